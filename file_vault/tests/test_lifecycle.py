import asyncio
from unittest.mock import patch

import aiofiles.os
import pytest

from conftest import put, read_all
from file_vault.app.errors import (
    CapacityExceeded,
    DuplicateUpload,
    LedgerIOError,
    NoFileProvided,
    ObjectNotFound,
    RestoreFailed,
    StoreIOError,
)
from file_vault.app.models.objects import TrashedObject
from file_vault.main import build_lifecycle_manager


@pytest.mark.asyncio
async def test_upload_and_download(manager):
    stored = await put(manager, "a.txt", b"hello")

    assert stored.filename == "a.txt"
    assert stored.size == 5
    assert await read_all(manager, stored.id) == b"hello"


@pytest.mark.asyncio
async def test_upload_requires_filename(manager):
    with pytest.raises(NoFileProvided):
        await put(manager, "", b"hello")


@pytest.mark.asyncio
async def test_capacity_rejects_upload_past_ceiling(storage_dirs, clock):
    manager = await build_lifecycle_manager(*storage_dirs, capacity_bytes=10, clock=clock)

    first = await put(manager, "one.bin", b"12345")
    second = await put(manager, "two.bin", b"1234")
    with pytest.raises(CapacityExceeded):
        await put(manager, "three.bin", b"12")

    # Earlier uploads are untouched
    names = {obj.filename for obj in await manager.list_active()}
    assert names == {"one.bin", "two.bin"}
    assert await read_all(manager, first.id) == b"12345"
    assert await read_all(manager, second.id) == b"1234"
    assert await manager.used_bytes() == 9

    # Exactly at the ceiling is still allowed
    await put(manager, "three.bin", b"1")
    assert await manager.used_bytes() == 10


@pytest.mark.asyncio
async def test_colliding_names_get_numbered(manager):
    names = []
    for content in (b"first", b"second", b"third!!"):
        names.append((await put(manager, "report.pdf", content)).filename)

    assert names == ["report.pdf", "report (2).pdf", "report (3).pdf"]


@pytest.mark.asyncio
async def test_duplicate_upload_rejected_within_window(manager, clock):
    await put(manager, "a.txt", b"hello")

    with pytest.raises(DuplicateUpload):
        await put(manager, "a.txt", b"world")

    assert len(await manager.list_active()) == 1

    clock.advance(61)
    retried = await put(manager, "a.txt", b"world")
    assert retried.filename == "a (2).txt"


@pytest.mark.asyncio
async def test_duplicate_check_runs_before_renaming(manager):
    await put(manager, "a.txt", b"hello")
    renamed = await put(manager, "a.txt", b"hello world")
    assert renamed.filename == "a (2).txt"

    # Only the requested name is compared, so the renamed copy does not block this one
    again = await put(manager, "a.txt", b"HELLO WORLD")
    assert again.filename == "a (3).txt"


@pytest.mark.asyncio
async def test_list_active_newest_first(manager, clock):
    for name in ("first.txt", "second.txt", "third.txt"):
        await put(manager, name, name.encode())
        clock.advance(1)

    assert [obj.filename for obj in await manager.list_active()] == [
        "third.txt", "second.txt", "first.txt"
    ]


@pytest.mark.asyncio
async def test_move_to_trash_and_restore_round_trip(manager):
    content = bytes(range(256)) * 50
    original = await put(manager, "data.bin", content)

    record = await manager.move_to_trash(original.id)
    assert record.payload == content
    assert record.size == len(content)
    assert await manager.list_active() == []
    with pytest.raises(ObjectNotFound):
        await manager.open_download(original.id)

    trash = await manager.list_trash()
    assert [r.original_id for r in trash] == [original.id]
    assert trash[0].has_payload

    outcome = await manager.restore(original.id)
    assert not outcome.metadata_only
    restored = outcome.restored
    assert restored.id != original.id
    assert restored.filename == "data.bin"
    assert restored.size == original.size
    assert await read_all(manager, restored.id) == content
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_move_to_trash_unknown_id(manager):
    with pytest.raises(ObjectNotFound):
        await manager.move_to_trash("f" * 32)
    with pytest.raises(ObjectNotFound):
        await manager.move_to_trash("../../etc/passwd")


@pytest.mark.asyncio
async def test_read_failure_leaves_object_active(manager):
    stored = await put(manager, "keep.txt", b"precious bytes")

    async def failing_stream(object_id):
        async def stream():
            yield b"prec"
            raise StoreIOError("Error reading file")
        return stream()

    with patch.object(manager.blob_store, "open_read_stream", failing_stream):
        with pytest.raises(StoreIOError):
            await manager.move_to_trash(stored.id)

    assert [obj.id for obj in await manager.list_active()] == [stored.id]
    assert await read_all(manager, stored.id) == b"precious bytes"
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_ledger_failure_leaves_object_active(manager):
    stored = await put(manager, "keep.txt", b"precious bytes")

    with patch.object(manager.trash_ledger, "insert", side_effect=LedgerIOError("Error writing trash record")):
        with pytest.raises(LedgerIOError):
            await manager.move_to_trash(stored.id)

    assert [obj.id for obj in await manager.list_active()] == [stored.id]
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_store_delete_failure_rolls_back_trash_record(manager):
    stored = await put(manager, "keep.txt", b"precious bytes")

    with patch.object(manager.blob_store, "delete", side_effect=StoreIOError("Error deleting file")):
        with pytest.raises(StoreIOError):
            await manager.move_to_trash(stored.id)

    assert [obj.id for obj in await manager.list_active()] == [stored.id]
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_list_trash_most_recent_first(manager, clock):
    ids = []
    for name in ("a.txt", "b.txt", "c.txt"):
        stored = await put(manager, name, name.encode())
        await manager.move_to_trash(stored.id)
        ids.append(stored.id)
        clock.advance(5)

    trash = await manager.list_trash()
    assert [r.original_id for r in trash] == list(reversed(ids))
    # Listings do not load payload bytes
    assert all(r.payload is None and r.has_payload for r in trash)


@pytest.mark.asyncio
async def test_trash_names_independent_of_active(manager, clock):
    first = await put(manager, "a.txt", b"one")
    await manager.move_to_trash(first.id)
    clock.advance(61)
    second = await put(manager, "a.txt", b"two")
    assert second.filename == "a.txt"

    await manager.move_to_trash(second.id)
    assert [r.filename for r in await manager.list_trash()] == ["a.txt", "a.txt"]


@pytest.mark.asyncio
async def test_purge_is_idempotent(manager):
    stored = await put(manager, "a.txt", b"hello")
    await manager.move_to_trash(stored.id)

    await manager.purge(stored.id)
    await manager.purge(stored.id)
    await manager.purge("f" * 32)
    await manager.purge("not-an-id")

    assert await manager.list_trash() == []
    with pytest.raises(ObjectNotFound):
        await manager.restore(stored.id)


@pytest.mark.asyncio
async def test_clear_trash(manager):
    for name in ("a.txt", "b.txt"):
        stored = await put(manager, name, name.encode())
        await manager.move_to_trash(stored.id)

    assert await manager.clear_trash() == 2
    assert await manager.list_trash() == []
    assert await manager.clear_trash() == 0


@pytest.mark.asyncio
async def test_restore_unknown_id(manager):
    with pytest.raises(ObjectNotFound):
        await manager.restore("f" * 32)


@pytest.mark.asyncio
async def test_restore_metadata_only_record(manager, clock):
    record = TrashedObject(
        original_id="a" * 32,
        filename="legacy.txt",
        size=12,
        uploaded_at=clock(),
        deleted_at=clock(),
    )
    await manager.trash_ledger.insert(record)

    outcome = await manager.restore(record.original_id)

    assert outcome.metadata_only
    assert await manager.list_active() == []
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_restore_resolves_name_collision(manager, clock):
    original = await put(manager, "a.txt", b"old")
    await manager.move_to_trash(original.id)
    clock.advance(61)
    await put(manager, "a.txt", b"new")

    outcome = await manager.restore(original.id)

    assert outcome.restored.filename == "a (2).txt"
    assert await read_all(manager, outcome.restored.id) == b"old"


@pytest.mark.asyncio
async def test_restore_respects_capacity(storage_dirs, clock):
    manager = await build_lifecycle_manager(*storage_dirs, capacity_bytes=10, clock=clock)
    original = await put(manager, "a.bin", b"123456")
    await manager.move_to_trash(original.id)
    await put(manager, "b.bin", b"123456")

    with pytest.raises(CapacityExceeded):
        await manager.restore(original.id)

    # Nothing was written, so the record stays
    assert [r.original_id for r in await manager.list_trash()] == [original.id]


@pytest.mark.asyncio
async def test_restore_failure_retains_record(manager):
    stored = await put(manager, "a.txt", b"hello")
    await manager.move_to_trash(stored.id)

    with patch.object(manager.blob_store, "write", side_effect=StoreIOError("Error uploading file")):
        with pytest.raises(RestoreFailed):
            await manager.restore(stored.id)

    assert [r.original_id for r in await manager.list_trash()] == [stored.id]
    assert await manager.list_active() == []

    # A retry succeeds once the store recovers
    outcome = await manager.restore(stored.id)
    assert await read_all(manager, outcome.restored.id) == b"hello"


@pytest.mark.asyncio
async def test_restore_failure_discards_record_when_configured(storage_dirs, clock):
    manager = await build_lifecycle_manager(*storage_dirs, restore_failure_policy="discard", clock=clock)
    stored = await put(manager, "a.txt", b"hello")
    await manager.move_to_trash(stored.id)

    with patch.object(manager.blob_store, "write", side_effect=StoreIOError("Error uploading file")):
        with pytest.raises(RestoreFailed):
            await manager.restore(stored.id)

    assert await manager.list_trash() == []
    assert await manager.list_active() == []


@pytest.mark.asyncio
async def test_unknown_restore_policy_rejected(storage_dirs):
    with pytest.raises(ValueError):
        await build_lifecycle_manager(*storage_dirs, restore_failure_policy="retry")


@pytest.mark.asyncio
async def test_failed_write_leaves_nothing_behind(manager):
    async def broken_chunks():
        yield b"partial"
        raise OSError("connection reset")

    with pytest.raises(StoreIOError):
        await manager.upload("broken.bin", 100, broken_chunks())

    assert await manager.list_active() == []
    assert list(manager.blob_store.temp_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_concurrent_uploads_respect_capacity(storage_dirs, clock):
    manager = await build_lifecycle_manager(*storage_dirs, capacity_bytes=10, clock=clock)

    results = await asyncio.gather(
        *(put(manager, f"file{i}.bin", b"1234") for i in range(5)),
        return_exceptions=True,
    )

    accepted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, CapacityExceeded)]
    assert len(accepted) == 2
    assert len(rejected) == 3
    assert await manager.used_bytes() == 8


@pytest.mark.asyncio
async def test_concurrent_uploads_get_unique_names(manager):
    results = await asyncio.gather(
        *(put(manager, "report.pdf", b"x" * (i + 1)) for i in range(4))
    )

    names = sorted(r.filename for r in results)
    assert names == ["report (2).pdf", "report (3).pdf", "report (4).pdf", "report.pdf"]
    assert len({obj.filename for obj in await manager.list_active()}) == 4



@pytest.mark.asyncio
async def test_concurrent_restores_consume_record_once(manager):
    stored = await put(manager, "a.txt", b"hello")
    await manager.move_to_trash(stored.id)

    results = await asyncio.gather(
        manager.restore(stored.id), manager.restore(stored.id), return_exceptions=True
    )

    restored = [r for r in results if not isinstance(r, Exception)]
    missing = [r for r in results if isinstance(r, ObjectNotFound)]
    assert len(restored) == 1
    assert len(missing) == 1
    assert [obj.filename for obj in await manager.list_active()] == ["a.txt"]
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_short_read_leaves_object_active(manager):
    stored = await put(manager, "keep.txt", b"precious bytes")

    async def short_stream(object_id):
        async def stream():
            yield b"precious"
        return stream()

    with patch.object(manager.blob_store, "open_read_stream", short_stream):
        with pytest.raises(StoreIOError):
            await manager.move_to_trash(stored.id)

    assert [obj.id for obj in await manager.list_active()] == [stored.id]
    assert await read_all(manager, stored.id) == b"precious bytes"
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_metadata_cleanup_failure_keeps_trash_copy(manager):
    stored = await put(manager, "keep.txt", b"precious bytes")
    real_unlink = aiofiles.os.unlink

    async def unlink_failing_on_meta(path, *args, **kwargs):
        if str(path).endswith(".meta"):
            raise OSError("read-only file system")
        return await real_unlink(path, *args, **kwargs)

    with patch("aiofiles.os.unlink", unlink_failing_on_meta):
        record = await manager.move_to_trash(stored.id)

    assert record.original_id == stored.id
    assert await manager.list_active() == []
    assert [r.original_id for r in await manager.list_trash()] == [stored.id]

    outcome = await manager.restore(stored.id)
    assert await read_all(manager, outcome.restored.id) == b"precious bytes"


@pytest.mark.asyncio
async def test_restore_ledger_failure_removes_new_object(manager):
    stored = await put(manager, "a.txt", b"hello")
    await manager.move_to_trash(stored.id)

    with patch.object(manager.trash_ledger, "delete", side_effect=LedgerIOError("Error deleting trash record")):
        with pytest.raises(LedgerIOError):
            await manager.restore(stored.id)

    assert await manager.list_active() == []
    assert [r.original_id for r in await manager.list_trash()] == [stored.id]

    # Retrying yields exactly one active copy
    await manager.restore(stored.id)
    assert [obj.filename for obj in await manager.list_active()] == ["a.txt"]
    assert await manager.list_trash() == []


@pytest.mark.asyncio
async def test_truncated_trash_payload_is_not_restored(manager):
    stored = await put(manager, "a.txt", b"hello world")
    await manager.move_to_trash(stored.id)
    _, payload_path = manager.trash_ledger.get_record_path(stored.id)
    payload_path.write_bytes(b"hello")

    with pytest.raises(LedgerIOError):
        await manager.restore(stored.id)

    assert await manager.list_active() == []


@pytest.mark.asyncio
async def test_timestamps_come_from_manager_clock(manager, clock):
    clock.advance(-3600)
    stored = await put(manager, "a.txt", b"hello")
    assert stored.uploaded_at == clock()
    assert (await manager.get_active(stored.id)).uploaded_at == clock()

    # The window runs on the same clock, so an hour-old stamp is not a duplicate
    # even if the upload just happened in wall-clock time
    clock.advance(61)
    again = await put(manager, "a.txt", b"hello")
    assert again.filename == "a (2).txt"

    await manager.move_to_trash(stored.id)
    clock.advance(5)
    outcome = await manager.restore(stored.id)
    assert outcome.restored.uploaded_at == clock()


@pytest.mark.asyncio
async def test_state_survives_restart(storage_dirs, clock):
    manager = await build_lifecycle_manager(*storage_dirs, clock=clock)
    kept = await put(manager, "kept.txt", b"kept")
    trashed = await put(manager, "trashed.txt", b"trashed")
    await manager.move_to_trash(trashed.id)

    reopened = await build_lifecycle_manager(*storage_dirs, clock=clock)

    assert [obj.id for obj in await reopened.list_active()] == [kept.id]
    assert [r.original_id for r in await reopened.list_trash()] == [trashed.id]
