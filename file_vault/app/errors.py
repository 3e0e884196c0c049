"""Error kinds raised by the file vault and the handler that renders them."""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from file_vault.logger_config import setup_logger, structured_log

logger = setup_logger()


class FileVaultError(Exception):
    """Base error. `code` is the machine-readable kind sent to clients."""

    code = "FileVaultError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoFileProvided(FileVaultError):
    code = "NoFileProvided"
    status_code = status.HTTP_400_BAD_REQUEST


class CapacityExceeded(FileVaultError):
    code = "CapacityExceeded"
    status_code = status.HTTP_400_BAD_REQUEST


class DuplicateUpload(FileVaultError):
    code = "DuplicateUpload"
    status_code = status.HTTP_409_CONFLICT


class ObjectNotFound(FileVaultError):
    code = "ObjectNotFound"
    status_code = status.HTTP_404_NOT_FOUND


class StoreIOError(FileVaultError):
    """Read, write or delete against the blob store failed."""

    code = "StoreIOError"


class LedgerIOError(FileVaultError):
    """Read, write or delete against the trash ledger failed."""

    code = "LedgerIOError"


class RestoreFailed(FileVaultError):
    code = "RestoreFailed"


async def file_vault_exception_handler(request: Request, exc: FileVaultError) -> JSONResponse:
    # details may hold internal paths; they are logged, never returned
    log = logger.error if exc.status_code >= 500 else logger.info
    log(structured_log(
        exc.message,
        event="request_failed",
        error=exc.code,
        path=request.url.path,
        details=exc.details
    ))
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )
