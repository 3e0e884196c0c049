from typing import Iterable, Optional

from file_vault import config
from file_vault.app.errors import CapacityExceeded
from file_vault.app.models.objects import StoredObject


def total_bytes(objects: Iterable[StoredObject]) -> int:
    """Point-in-time sum of the sizes of the given active objects."""
    return sum(obj.size for obj in objects)


def check_capacity(current_total_bytes: int, incoming_bytes: int, ceiling: Optional[int] = None) -> None:
    """Raise CapacityExceeded if storing `incoming_bytes` more would pass the ceiling.

    Args:
        current_total_bytes: Bytes held by active objects right now
        incoming_bytes: Size in bytes of the object about to be written
        ceiling: Capacity ceiling, defaults to config.MAX_CAPACITY_BYTES
    """
    if ceiling is None:
        ceiling = config.MAX_CAPACITY_BYTES
    if current_total_bytes + incoming_bytes > ceiling:
        raise CapacityExceeded(
            f"Storage limit exceeded. Max {ceiling / (1024 * 1024 * 1024):g}GB allowed.",
            details={"used": current_total_bytes, "incoming": incoming_bytes, "ceiling": ceiling},
        )
