from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class StoredObject:
    """An active object: bytes in the blob store plus its metadata sidecar."""
    id: str
    filename: str
    size: int
    uploaded_at: datetime


@dataclass
class TrashedObject:
    """A soft-deleted object.

    `payload` holds the full content when loaded by key. Listings leave it unset and
    only report through `has_payload` whether bytes were preserved; records without
    bytes are metadata-only and restore without re-materializing anything.
    """
    original_id: str
    filename: str
    size: int
    uploaded_at: datetime
    deleted_at: datetime
    payload: Optional[bytes] = None
    has_payload: bool = False

    def __post_init__(self):
        if self.payload is not None:
            self.has_payload = True


@dataclass(frozen=True)
class RestoreOutcome:
    restored: Optional[StoredObject]

    @property
    def metadata_only(self) -> bool:
        return self.restored is None
