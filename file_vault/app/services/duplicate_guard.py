from datetime import datetime, timedelta
from typing import Iterable

from file_vault.app.models.objects import StoredObject


def is_duplicate(
    filename: str,
    size: int,
    recent_active: Iterable[StoredObject],
    now: datetime,
    window_seconds: int = 60,
) -> bool:
    """True if an active object with the same filename and size was uploaded inside the window.

    Compared against the filename as requested by the client, before any renaming.
    """
    window = timedelta(seconds=window_seconds)
    for obj in recent_active:
        if obj.filename == filename and obj.size == size and now - obj.uploaded_at < window:
            return True
    return False
