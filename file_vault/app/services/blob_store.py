import hashlib
import json
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

import aiofiles
import aiofiles.os

from file_vault import config
from file_vault.app.errors import ObjectNotFound, StoreIOError
from file_vault.app.models.objects import StoredObject
from file_vault.logger_config import setup_logger

logger = setup_logger()

OBJECT_ID_PATTERN = re.compile(r'^[a-f0-9]{32}$')


def is_valid_id(object_id: str) -> bool:
    """Check that the id has the shape the store hands out (uuid4 hex)."""
    return bool(object_id) and bool(OBJECT_ID_PATTERN.match(object_id))


class BlobStore:
    """Filesystem blob store: `<id>.blob` payloads with `<id>.meta` JSON sidecars."""

    def __init__(self, data_dir: Path, temp_dir: Path, chunk_size: int = config.CHUNK_SIZE):
        self.data_dir = Path(data_dir)
        self.temp_dir = Path(temp_dir)
        self.chunk_size = chunk_size

    async def initialize(self):
        """Create the storage directories and drop temp files left by interrupted writes."""
        logger.info("Initializing blob store...")

        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.temp_dir.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        files_removed = 0
        for file in self.temp_dir.glob("*"):
            if file.is_file():
                await aiofiles.os.unlink(file)
                files_removed += 1
        logger.info(f"Cleaned temporary directory, removed {files_removed} files")

    def get_blob_path(self, object_id: str) -> Tuple[Path, Path]:
        """Get the payload and metadata paths for an object id."""
        # Use first 2 chars of MD5 hash as directory name
        hash_prefix = hashlib.md5(object_id.encode()).hexdigest()[:2]
        directory = self.data_dir / hash_prefix

        blob_path = directory / f"{object_id}.blob"
        metadata_path = directory / f"{object_id}.meta"

        return blob_path, metadata_path

    async def write(
        self, filename: str, chunks: AsyncIterator[bytes], uploaded_at: Optional[datetime] = None
    ) -> StoredObject:
        """Stream `chunks` into a new object under a freshly assigned id.

        The metadata sidecar is written before the payload is renamed into place,
        and `get`/`list_all` only report objects whose payload exists, so a failed
        write never leaves a listed object pointing at incomplete bytes.
        """
        object_id = uuid.uuid4().hex
        blob_path, metadata_path = self.get_blob_path(object_id)
        temp_blob_path = self.temp_dir / f"{object_id}_temp.blob"
        temp_metadata_path = self.temp_dir / f"{object_id}_temp.meta"

        try:
            size = 0
            async with aiofiles.open(temp_blob_path, 'wb') as f:
                async for chunk in chunks:
                    size += len(chunk)
                    await f.write(chunk)

            stored = StoredObject(
                id=object_id,
                filename=filename,
                size=size,
                uploaded_at=uploaded_at or datetime.now(timezone.utc),
            )
            async with aiofiles.open(temp_metadata_path, 'w') as f:
                await f.write(json.dumps({
                    "filename": stored.filename,
                    "length": stored.size,
                    "uploadDate": stored.uploaded_at.isoformat(),
                }))

            blob_path.parent.mkdir(exist_ok=True)
            await aiofiles.os.rename(str(temp_metadata_path), str(metadata_path))
            await aiofiles.os.rename(str(temp_blob_path), str(blob_path))
        except Exception as e:
            logger.error(f"Error writing object {object_id}: {str(e)}", exc_info=True)
            # Clean up partial files so nothing references incomplete bytes
            for path in (temp_blob_path, temp_metadata_path, metadata_path):
                if await aiofiles.os.path.exists(path):
                    await aiofiles.os.unlink(path)
            if isinstance(e, OSError):
                raise StoreIOError("Error uploading file", details={"id": object_id}) from e
            raise

        logger.debug(f"Stored object {object_id} ({size} bytes) as '{filename}'")
        return stored

    async def get(self, object_id: str) -> Optional[StoredObject]:
        """Return the object's metadata, or None if no complete object has that id."""
        if not is_valid_id(object_id):
            return None
        blob_path, metadata_path = self.get_blob_path(object_id)
        if not await aiofiles.os.path.exists(blob_path):
            return None
        return await self._read_metadata(object_id, metadata_path)

    async def list_all(self) -> List[StoredObject]:
        """Every active object, in no particular order."""
        objects = []
        if not self.data_dir.exists():
            return objects
        for folder_path, _, files in os.walk(self.data_dir):
            for file in files:
                if not file.endswith(".blob"):
                    continue
                object_id = file[:-len(".blob")]
                stored = await self._read_metadata(object_id, Path(folder_path) / f"{object_id}.meta")
                if stored is not None:
                    objects.append(stored)
        return objects

    async def open_read_stream(self, object_id: str) -> AsyncIterator[bytes]:
        """Yield the object's bytes in chunks."""
        stored = await self.get(object_id)
        if stored is None:
            raise ObjectNotFound("File not found", details={"id": object_id})
        blob_path, _ = self.get_blob_path(object_id)

        async def file_iterator():
            try:
                async with aiofiles.open(blob_path, 'rb') as file:
                    while chunk := await file.read(self.chunk_size):
                        yield chunk
            except OSError as e:
                raise StoreIOError("Error reading file", details={"id": object_id}) from e

        return file_iterator()

    async def delete(self, object_id: str) -> None:
        """Remove the object's payload and metadata."""
        blob_path, metadata_path = self.get_blob_path(object_id)
        try:
            # Payload first: once it is gone the object is no longer listed
            if await aiofiles.os.path.exists(blob_path):
                await aiofiles.os.unlink(blob_path)
            if await aiofiles.os.path.exists(metadata_path):
                await aiofiles.os.unlink(metadata_path)
        except OSError as e:
            logger.error(f"Error deleting object {object_id}: {str(e)}", exc_info=True)
            raise StoreIOError("Error deleting file", details={"id": object_id}) from e
        logger.debug(f"Deleted object {object_id}")

    async def _read_metadata(self, object_id: str, metadata_path: Path) -> Optional[StoredObject]:
        try:
            async with aiofiles.open(metadata_path, 'r') as f:
                metadata = json.loads(await f.read())
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StoreIOError("Error reading file metadata", details={"id": object_id}) from e
        return StoredObject(
            id=object_id,
            filename=metadata["filename"],
            size=metadata["length"],
            uploaded_at=datetime.fromisoformat(metadata["uploadDate"]),
        )
