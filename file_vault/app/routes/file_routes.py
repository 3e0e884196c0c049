import mimetypes
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import StreamingResponse

from file_vault import config
from file_vault.app.errors import NoFileProvided
from file_vault.app.models.files import (
    FileOut,
    HealthOut,
    MessageOut,
    RestoreOut,
    TrashOut,
    UploadOut,
)
from file_vault.app.services.lifecycle_manager import ObjectLifecycleManager
from file_vault.logger_config import setup_logger

logger = setup_logger()

router = APIRouter()


def get_manager(request: Request) -> ObjectLifecycleManager:
    return request.app.state.lifecycle_manager


def content_disposition(filename: str) -> str:
    """Attachment header; non-ASCII names use the RFC 5987 encoded form."""
    try:
        filename.encode('ascii')
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"
    return f'attachment; filename="{filename}"'


@router.get("/health", response_model=HealthOut)
async def health(request: Request):
    manager = get_manager(request)
    return HealthOut(
        status="ok",
        used_bytes=await manager.used_bytes(),
        capacity_bytes=manager.capacity_bytes,
    )


@router.post("/api/upload", response_model=UploadOut)
async def upload_file(request: Request, file: Optional[UploadFile] = File(None)):
    """Upload a file as a new active object."""
    if file is None or not file.filename:
        raise NoFileProvided("No file uploaded")

    logger.info(f"Receiving upload request for file: {file.filename}")

    # Get content length from the spooled file
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    logger.debug(f"Content-Length: {size} bytes")

    async def chunks():
        while chunk := await file.read(config.CHUNK_SIZE):
            yield chunk

    stored = await get_manager(request).upload(file.filename, size, chunks())
    return UploadOut(message="File uploaded successfully", id=stored.id, filename=stored.filename)


@router.get("/api/files", response_model=List[FileOut])
async def list_files(request: Request):
    objects = await get_manager(request).list_active()
    return [FileOut.from_stored(obj) for obj in objects]


@router.get("/api/download/{object_id}")
async def download_file(object_id: str, request: Request):
    """Stream an active object back as an attachment."""
    logger.info(f"Receiving download request for object_id: {object_id}")
    stored, stream = await get_manager(request).open_download(object_id)

    content_type, _ = mimetypes.guess_type(stored.filename)
    return StreamingResponse(
        stream,
        media_type=content_type or "application/octet-stream",
        headers={
            "content-disposition": content_disposition(stored.filename),
            "content-length": str(stored.size),
        },
    )


@router.delete("/api/delete/{object_id}", response_model=MessageOut)
async def delete_file(object_id: str, request: Request):
    logger.info(f"Receiving delete request for object_id: {object_id}")
    await get_manager(request).move_to_trash(object_id)
    return MessageOut(message="Moved to trash")


@router.get("/api/trash", response_model=List[TrashOut])
async def list_trash(request: Request):
    records = await get_manager(request).list_trash()
    return [TrashOut.from_trashed(record) for record in records]


@router.delete("/api/trash/clear", response_model=MessageOut)
async def clear_trash(request: Request):
    await get_manager(request).clear_trash()
    return MessageOut(message="Trash cleared")


@router.delete("/api/trash/delete/{object_id}", response_model=MessageOut)
async def purge_trash_entry(object_id: str, request: Request):
    await get_manager(request).purge(object_id)
    return MessageOut(message="Deleted permanently")


@router.post("/api/trash/restore/{object_id}", response_model=RestoreOut)
async def restore_trash_entry(object_id: str, request: Request):
    outcome = await get_manager(request).restore(object_id)
    if outcome.metadata_only:
        return RestoreOut(message="Restored (metadata only)")
    return RestoreOut(message="Restored", id=outcome.restored.id, filename=outcome.restored.filename)
