from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from file_vault import config
from file_vault.app.errors import FileVaultError, file_vault_exception_handler
from file_vault.app.repository.user_directory import InMemoryUserDirectory
from file_vault.app.routes import file_routes, user_routes
from file_vault.app.services.blob_store import BlobStore
from file_vault.app.services.lifecycle_manager import ObjectLifecycleManager
from file_vault.app.services.trash_ledger import TrashLedger
from file_vault.logger_config import setup_logger

# Logger setup
logger = setup_logger()


async def build_lifecycle_manager(data_dir: Path, temp_dir: Path, trash_dir: Path, **options) -> ObjectLifecycleManager:
    """Construct and initialize the blob store and trash ledger, then wire them together."""
    blob_store = BlobStore(data_dir, temp_dir)
    await blob_store.initialize()
    trash_ledger = TrashLedger(trash_dir)
    await trash_ledger.initialize()
    return ObjectLifecycleManager(blob_store, trash_ledger, **options)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.lifecycle_manager = await build_lifecycle_manager(
        Path(config.DATA_DIR), Path(config.TEMP_DIR), Path(config.TRASH_DIR)
    )
    app.state.user_directory = InMemoryUserDirectory(config.USERS)
    logger.info(f"Data directory: {config.DATA_DIR}")
    logger.info(f"Trash directory: {config.TRASH_DIR}")
    logger.info(f"Maximum capacity: {config.MAX_CAPACITY_BYTES / (1024*1024):.2f} MB")
    yield


# Create FastAPI app with lifespan
app = FastAPI(title="File Vault", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FileVaultError, file_vault_exception_handler)

app.include_router(file_routes.router)
app.include_router(user_routes.router)


if __name__ == "__main__":
    logger.info("Starting File Vault...")
    uvicorn.run(app, host=config.HOST, port=config.PORT)
