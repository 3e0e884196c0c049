import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from file_vault.app.services.lifecycle_manager import iter_chunks
from file_vault.main import build_lifecycle_manager


class FakeClock:
    """Manually advanced clock for the duplicate window and trash timestamps."""

    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage_dirs(tmp_path):
    return tmp_path / "data", tmp_path / "temp", tmp_path / "trash"


@pytest_asyncio.fixture
async def manager(storage_dirs, clock):
    data_dir, temp_dir, trash_dir = storage_dirs
    return await build_lifecycle_manager(data_dir, temp_dir, trash_dir, clock=clock)


async def put(manager, filename, content):
    """Upload `content` through the lifecycle manager in small chunks."""
    return await manager.upload(filename, len(content), iter_chunks(content, 4))


async def read_all(manager, object_id):
    _, stream = await manager.open_download(object_id)
    return b"".join([chunk async for chunk in stream])


def run(coro):
    return asyncio.run(coro)
