import asyncio
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, List, Optional, Tuple

from file_vault import config
from file_vault.app.errors import (
    DuplicateUpload,
    LedgerIOError,
    NoFileProvided,
    ObjectNotFound,
    RestoreFailed,
    StoreIOError,
)
from file_vault.app.models.objects import RestoreOutcome, StoredObject, TrashedObject
from file_vault.app.services.blob_store import BlobStore
from file_vault.app.services.duplicate_guard import is_duplicate
from file_vault.app.services.name_resolver import resolve_name
from file_vault.app.services.trash_ledger import TrashLedger
from file_vault.app.services.usage_accountant import check_capacity, total_bytes
from file_vault.logger_config import setup_logger, structured_log

logger = setup_logger()

RESTORE_POLICIES = ("retain", "discard")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def iter_chunks(payload: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for start in range(0, len(payload), chunk_size):
        yield payload[start:start + chunk_size]


class ObjectLifecycleManager:
    """Moves objects between the active store and the trash ledger.

    Upload admission (capacity check, duplicate check, name resolution and the
    write itself) runs under one asyncio lock, so concurrent uploads handled by
    this instance cannot jointly pass the ceiling or claim the same name. Several
    processes sharing one data directory still race on those checks.

    Moving an object to trash buffers its whole payload in memory before the
    ledger write, which bounds the practical object size by available memory.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        trash_ledger: TrashLedger,
        capacity_bytes: Optional[int] = None,
        duplicate_window_seconds: Optional[int] = None,
        restore_failure_policy: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.blob_store = blob_store
        self.trash_ledger = trash_ledger
        self.capacity_bytes = capacity_bytes if capacity_bytes is not None else config.MAX_CAPACITY_BYTES
        self.duplicate_window_seconds = (
            duplicate_window_seconds if duplicate_window_seconds is not None else config.DUPLICATE_WINDOW_SECONDS
        )
        self.restore_failure_policy = restore_failure_policy or config.RESTORE_FAILURE_POLICY
        if self.restore_failure_policy not in RESTORE_POLICIES:
            raise ValueError(f"Unknown restore failure policy: {self.restore_failure_policy}")
        self.clock = clock
        self.admission_lock = asyncio.Lock()

    async def used_bytes(self) -> int:
        return total_bytes(await self.blob_store.list_all())

    async def upload(self, filename: str, size: int, chunks: AsyncIterator[bytes]) -> StoredObject:
        """Admit and store a new object, returning it under its final name."""
        if not filename:
            raise NoFileProvided("No file uploaded")

        async with self.admission_lock:
            active = await self.blob_store.list_all()
            check_capacity(total_bytes(active), size, self.capacity_bytes)

            if is_duplicate(filename, size, active, self.clock(), self.duplicate_window_seconds):
                raise DuplicateUpload(
                    "Duplicate upload detected. File already uploaded recently.",
                    details={"filename": filename, "size": size},
                )

            final_name = resolve_name(filename, {obj.filename for obj in active})
            stored = await self.blob_store.write(final_name, chunks, uploaded_at=self.clock())

        logger.info(structured_log(
            "File uploaded",
            event="object_uploaded",
            object_id=stored.id,
            filename=stored.filename,
            requested_filename=filename,
            size=stored.size,
        ))
        return stored

    async def list_active(self) -> List[StoredObject]:
        """Active objects, newest upload first."""
        objects = await self.blob_store.list_all()
        return sorted(objects, key=lambda obj: obj.uploaded_at, reverse=True)

    async def get_active(self, object_id: str) -> StoredObject:
        stored = await self.blob_store.get(object_id)
        if stored is None:
            raise ObjectNotFound("File not found", details={"id": object_id})
        return stored

    async def open_download(self, object_id: str) -> Tuple[StoredObject, AsyncIterator[bytes]]:
        stored = await self.get_active(object_id)
        return stored, await self.blob_store.open_read_stream(object_id)

    async def move_to_trash(self, object_id: str) -> TrashedObject:
        """Copy the object into the trash ledger, then remove it from the active store.

        The object is only deleted from the store once the ledger holds a durable
        copy. A failed read or ledger write leaves the object active and the
        ledger untouched. If the store delete fails after the payload is gone, the
        trash record is kept and the transition counts as done.
        """
        stored = await self.get_active(object_id)

        buffer = bytearray()
        stream = await self.blob_store.open_read_stream(object_id)
        async for chunk in stream:
            buffer.extend(chunk)
        if len(buffer) != stored.size:
            raise StoreIOError(
                "Error reading file for trash: incomplete read",
                details={"id": object_id, "expected": stored.size, "read": len(buffer)},
            )

        record = TrashedObject(
            original_id=stored.id,
            filename=stored.filename,
            size=stored.size,
            uploaded_at=stored.uploaded_at,
            deleted_at=self.clock(),
            payload=bytes(buffer),
        )
        await self.trash_ledger.insert(record)

        try:
            await self.blob_store.delete(object_id)
        except StoreIOError:
            # If the payload is already gone the trash record is the only copy and stays
            if await self.blob_store.get(object_id) is None:
                logger.warning(structured_log(
                    "Payload removed but store cleanup failed; keeping trash record",
                    event="object_trash_cleanup_failed",
                    object_id=object_id,
                ))
            else:
                # Still active: undo the ledger copy so it is not both active and trashed
                try:
                    await self.trash_ledger.delete(object_id)
                except LedgerIOError:
                    logger.exception(f"Could not roll back trash record {object_id} after failed delete")
                raise

        logger.info(structured_log(
            "Moved to trash",
            event="object_trashed",
            object_id=object_id,
            filename=stored.filename,
            size=stored.size,
        ))
        return record

    async def list_trash(self) -> List[TrashedObject]:
        """Trashed objects, most recently deleted first."""
        return await self.trash_ledger.list_all()

    async def purge(self, object_id: str) -> None:
        """Permanently remove a trash record. Purging a missing record succeeds."""
        await self.trash_ledger.delete(object_id)
        logger.info(structured_log("Deleted permanently", event="trash_purged", object_id=object_id))

    async def clear_trash(self) -> int:
        removed = await self.trash_ledger.delete_all()
        logger.info(structured_log("Trash cleared", event="trash_cleared", removed=removed))
        return removed

    async def restore(self, object_id: str) -> RestoreOutcome:
        """Re-materialize a trashed object under a new id and drop its trash record.

        Metadata-only records are dropped without writing anything. If writing the
        payload fails, the record is kept (policy "retain") so the restore can be
        retried, or dropped (policy "discard"). The whole transition holds the
        admission lock, so a record is consumed by exactly one restore.
        """
        async with self.admission_lock:
            record = await self.trash_ledger.find_by_key(object_id)
            if record is None:
                raise ObjectNotFound("Trash file not found", details={"id": object_id})

            if not record.has_payload:
                await self.trash_ledger.delete(object_id)
                logger.warning(structured_log(
                    "Restored (metadata only)",
                    event="object_restored_metadata_only",
                    object_id=object_id,
                    filename=record.filename,
                ))
                return RestoreOutcome(restored=None)

            active = await self.blob_store.list_all()
            check_capacity(total_bytes(active), len(record.payload), self.capacity_bytes)
            final_name = resolve_name(record.filename, {obj.filename for obj in active})
            try:
                stored = await self.blob_store.write(
                    final_name,
                    iter_chunks(record.payload, self.blob_store.chunk_size),
                    uploaded_at=self.clock(),
                )
            except StoreIOError as e:
                if self.restore_failure_policy == "discard":
                    await self.trash_ledger.delete(object_id)
                logger.error(structured_log(
                    "Restore failed",
                    event="object_restore_failed",
                    object_id=object_id,
                    policy=self.restore_failure_policy,
                ))
                raise RestoreFailed(f"Restore failed: {e.message}", details={"id": object_id}) from e

            try:
                await self.trash_ledger.delete(object_id)
            except LedgerIOError:
                # Undo the new object so a retry cannot produce a second copy
                try:
                    await self.blob_store.delete(stored.id)
                except StoreIOError:
                    logger.exception(f"Could not remove restored object {stored.id} after ledger failure")
                raise

        logger.info(structured_log(
            "Restored",
            event="object_restored",
            object_id=object_id,
            new_object_id=stored.id,
            filename=stored.filename,
        ))
        return RestoreOutcome(restored=stored)
