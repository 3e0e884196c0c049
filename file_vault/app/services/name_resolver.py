from typing import AbstractSet, Tuple


def split_extension(filename: str) -> Tuple[str, str]:
    """Split at the last dot; the extension keeps its dot. No dot means no extension."""
    dot = filename.rfind(".")
    if dot == -1:
        return filename, ""
    return filename[:dot], filename[dot:]


def resolve_name(requested_name: str, active_names: AbstractSet[str]) -> str:
    """Return `requested_name`, or the first free `base (n)ext` with n starting at 2."""
    if requested_name not in active_names:
        return requested_name

    base, ext = split_extension(requested_name)
    count = 2
    # At most len(active_names) candidates can be taken
    while True:
        candidate = f"{base} ({count}){ext}"
        if candidate not in active_names:
            return candidate
        count += 1
