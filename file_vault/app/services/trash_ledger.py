import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os

from file_vault.app.errors import LedgerIOError
from file_vault.app.models.objects import TrashedObject
from file_vault.app.services.blob_store import is_valid_id
from file_vault.logger_config import setup_logger

logger = setup_logger()


class TrashLedger:
    """Keyed store of trashed objects, independent of the blob store.

    Each record is `<original_id>.json` plus an optional `<original_id>.payload`.
    The payload is written first and the metadata renamed into place last, so a
    record only becomes visible once its bytes are durable. A record without a
    payload file is a metadata-only record.
    """

    def __init__(self, trash_dir: Path):
        self.trash_dir = Path(trash_dir)

    async def initialize(self):
        self.trash_dir.mkdir(exist_ok=True, parents=True)
        # Unfinished inserts never got their metadata renamed into place
        removed = 0
        for file in self.trash_dir.glob("*.tmp"):
            await aiofiles.os.unlink(file)
            removed += 1
        logger.info(f"Trash ledger ready at {self.trash_dir}, removed {removed} unfinished records")

    def get_record_path(self, original_id: str) -> Tuple[Path, Path]:
        return (
            self.trash_dir / f"{original_id}.json",
            self.trash_dir / f"{original_id}.payload",
        )

    async def insert(self, record: TrashedObject) -> None:
        metadata_path, payload_path = self.get_record_path(record.original_id)
        temp_metadata_path = self.trash_dir / f"{record.original_id}.json.tmp"
        temp_payload_path = self.trash_dir / f"{record.original_id}.payload.tmp"
        try:
            if record.payload is not None:
                async with aiofiles.open(temp_payload_path, 'wb') as f:
                    await f.write(record.payload)
                await aiofiles.os.rename(str(temp_payload_path), str(payload_path))

            async with aiofiles.open(temp_metadata_path, 'w') as f:
                await f.write(json.dumps({
                    "fileId": record.original_id,
                    "filename": record.filename,
                    "length": record.size,
                    "uploadDate": record.uploaded_at.isoformat(),
                    "deletedAt": record.deleted_at.isoformat(),
                }))
            await aiofiles.os.rename(str(temp_metadata_path), str(metadata_path))
        except OSError as e:
            logger.error(f"Error writing trash record {record.original_id}: {str(e)}", exc_info=True)
            for path in (temp_payload_path, temp_metadata_path, payload_path):
                if await aiofiles.os.path.exists(path):
                    await aiofiles.os.unlink(path)
            raise LedgerIOError("Error writing trash record", details={"id": record.original_id}) from e

    async def find_by_key(self, original_id: str) -> Optional[TrashedObject]:
        if not is_valid_id(original_id):
            return None
        metadata_path, payload_path = self.get_record_path(original_id)
        try:
            async with aiofiles.open(metadata_path, 'r') as f:
                metadata = json.loads(await f.read())
            payload = None
            if await aiofiles.os.path.exists(payload_path):
                async with aiofiles.open(payload_path, 'rb') as f:
                    payload = await f.read()
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerIOError("Error reading trash record", details={"id": original_id}) from e
        if payload is not None and len(payload) != metadata["length"]:
            raise LedgerIOError(
                "Trash record payload is incomplete",
                details={"id": original_id, "expected": metadata["length"], "stored": len(payload)},
            )
        return self._to_record(metadata, payload)

    async def delete(self, original_id: str) -> None:
        """Remove a record. Missing records are not an error."""
        if not is_valid_id(original_id):
            return
        metadata_path, payload_path = self.get_record_path(original_id)
        try:
            # Metadata first: a record without metadata is invisible
            for path in (metadata_path, payload_path):
                if await aiofiles.os.path.exists(path):
                    await aiofiles.os.unlink(path)
        except OSError as e:
            raise LedgerIOError("Error deleting trash record", details={"id": original_id}) from e

    async def delete_all(self) -> int:
        """Remove every record and return how many there were."""
        removed = 0
        try:
            for metadata_path in list(self.trash_dir.glob("*.json")):
                await self.delete(metadata_path.stem)
                removed += 1
            # Orphaned payloads whose metadata never landed
            for payload_path in list(self.trash_dir.glob("*.payload")):
                await aiofiles.os.unlink(payload_path)
        except OSError as e:
            raise LedgerIOError("Error clearing trash") from e
        return removed

    async def list_all(self) -> List[TrashedObject]:
        """All records, most recently deleted first. Payload bytes are not loaded."""
        records = []
        try:
            for metadata_path in self.trash_dir.glob("*.json"):
                async with aiofiles.open(metadata_path, 'r') as f:
                    metadata = json.loads(await f.read())
                _, payload_path = self.get_record_path(metadata_path.stem)
                record = self._to_record(metadata, None)
                record.has_payload = await aiofiles.os.path.exists(payload_path)
                records.append(record)
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerIOError("Failed to list trash") from e

        records.sort(key=lambda record: record.deleted_at, reverse=True)
        return records

    @staticmethod
    def _to_record(metadata: dict, payload: Optional[bytes]) -> TrashedObject:
        return TrashedObject(
            original_id=metadata["fileId"],
            filename=metadata["filename"],
            size=metadata["length"],
            uploaded_at=datetime.fromisoformat(metadata["uploadDate"]),
            deleted_at=datetime.fromisoformat(metadata["deletedAt"]),
            payload=payload,
        )
