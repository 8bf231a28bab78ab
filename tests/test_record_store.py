"""Tests for the file-backed record store."""

import json

import pytest

from core.constants import PurchaseStatus
from core.exceptions import (
    InvalidTransitionError,
    RecordConflictError,
    RecordNotFoundError,
    RecordNotPendingError,
)
from database import FileRecordStore
from database.models import PurchaseRecord, new_record_id
from tests.conftest import USER, OTHER_USER


def make_record(user: str = USER, created_at: str = "2025-03-01T12:00:00+00:00") -> PurchaseRecord:
    return PurchaseRecord(
        id=new_record_id(),
        user=user,
        display_name="Ana",
        raffle_id=1,
        raffle_name="Sticker Rueda y Gana",
        item_count=10,
        total_amount=10000,
        created_at=created_at,
    )


def partition_files(store, status):
    return sorted(p.name for p in (store.base_dir / status.value).glob("*.json"))


@pytest.mark.asyncio
async def test_create_writes_one_file_in_pending(store):
    record = await store.create(make_record())

    assert record.version == 1
    assert partition_files(store, PurchaseStatus.PENDING) == [f"{record.id}.json"]
    data = json.loads((store.base_dir / "pending" / f"{record.id}.json").read_text())
    assert data["status"] == "pending"
    assert data["user"] == USER


@pytest.mark.asyncio
async def test_create_rejects_duplicate_id(store):
    record = await store.create(make_record())
    with pytest.raises(RecordConflictError):
        await store.create(make_record().with_patch({"id": record.id}))


@pytest.mark.asyncio
async def test_find_pending_returns_newest_for_user(store):
    await store.create(make_record(created_at="2025-03-01T10:00:00+00:00"))
    newest = await store.create(make_record(created_at="2025-03-01T11:00:00+00:00"))
    await store.create(make_record(user=OTHER_USER))

    found = await store.find_pending(USER)
    assert found.id == newest.id
    assert await store.find_pending("570000000000") is None


@pytest.mark.asyncio
async def test_move_keeps_status_and_partition_in_agreement(store):
    record = await store.create(make_record())

    moved = await store.move_partition(
        record.id,
        PurchaseStatus.PENDING,
        PurchaseStatus.COMPLETED,
        {"assigned_numbers": ["001"]},
    )

    assert moved.status == "completed"
    assert moved.version == 2
    assert partition_files(store, PurchaseStatus.PENDING) == []
    assert partition_files(store, PurchaseStatus.COMPLETED) == [f"{record.id}.json"]
    stored = await store.find_by_id(record.id)
    assert stored.status == "completed"
    assert stored.assigned_numbers == ["001"]


@pytest.mark.asyncio
async def test_second_move_reports_not_pending(store):
    record = await store.create(make_record())
    await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.CANCELED)

    with pytest.raises(RecordNotPendingError) as excinfo:
        await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.COMPLETED)
    assert excinfo.value.status == "canceled"
    assert partition_files(store, PurchaseStatus.COMPLETED) == []


@pytest.mark.asyncio
async def test_terminal_records_never_move(store):
    record = await store.create(make_record())
    await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        await store.move_partition(record.id, PurchaseStatus.COMPLETED, PurchaseStatus.CANCELED)


@pytest.mark.asyncio
async def test_unknown_record_is_not_found(store):
    with pytest.raises(RecordNotFoundError):
        await store.update_pending("purchase_0_missing", {"receipt_ref": "x"})
    assert await store.find_by_id("purchase_0_missing") is None


@pytest.mark.asyncio
async def test_update_pending_checks_version(store):
    record = await store.create(make_record())
    updated = await store.update_pending(record.id, {"receipt_ref": "receipt_a.jpg"}, expected_version=1)
    assert updated.version == 2

    with pytest.raises(RecordConflictError):
        await store.update_pending(record.id, {"receipt_ref": "receipt_b.jpg"}, expected_version=1)
    assert (await store.find_by_id(record.id)).receipt_ref == "receipt_a.jpg"


@pytest.mark.asyncio
async def test_update_pending_cannot_change_status(store):
    record = await store.create(make_record())
    updated = await store.update_pending(record.id, {"status": "completed"})
    assert updated.status == "pending"
    assert partition_files(store, PurchaseStatus.PENDING) == [f"{record.id}.json"]


@pytest.mark.asyncio
async def test_find_by_id_prefers_terminal_copy(store):
    record = await store.create(make_record())
    pending_path = store.base_dir / "pending" / f"{record.id}.json"
    leftover = pending_path.read_text()
    await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.COMPLETED)
    # Simulate a crash between writing the destination and unlinking the source
    pending_path.write_text(leftover)

    assert (await store.find_by_id(record.id)).status == "completed"

    removed = await store.repair()
    assert removed == 1
    assert partition_files(store, PurchaseStatus.PENDING) == []


@pytest.mark.asyncio
async def test_repair_removes_temp_files(store):
    (store.base_dir / "pending" / "purchase_1_abc.json.tmp").write_text("{")
    assert await store.repair() == 1


@pytest.mark.asyncio
async def test_unreadable_files_are_skipped_when_listing(store):
    record = await store.create(make_record())
    (store.base_dir / "pending" / "broken.json").write_text("{not json")

    pending = await store.list_by_status(PurchaseStatus.PENDING)
    assert [r.id for r in pending] == [record.id]


@pytest.mark.asyncio
async def test_pending_lookups_scan_the_partition_once(store, monkeypatch):
    first = await store.create(make_record())
    other = await store.create(make_record(user=OTHER_USER))
    scans = []
    original_scan = store._scan

    def counting_scan(status):
        scans.append(status)
        return original_scan(status)

    monkeypatch.setattr(store, "_scan", counting_scan)

    assert (await store.find_pending(USER)).id == first.id
    assert (await store.find_pending(OTHER_USER)).id == other.id
    assert (await store.find_pending(USER)).id == first.id
    assert scans == [PurchaseStatus.PENDING]


@pytest.mark.asyncio
async def test_pending_index_follows_creates_and_moves(store):
    assert await store.find_pending(USER) is None

    record = await store.create(make_record())
    assert (await store.find_pending(USER)).id == record.id

    await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.CANCELED)
    assert await store.find_pending(USER) is None
    assert await store.list_pending_for_user(USER) == []


@pytest.mark.asyncio
async def test_new_store_instance_finds_existing_pending_records(store):
    record = await store.create(make_record())

    reopened = FileRecordStore(store.base_dir)

    assert (await reopened.find_pending(USER)).id == record.id


@pytest.mark.asyncio
async def test_repair_rebuilds_the_pending_index(store):
    assert await store.find_pending(USER) is None
    record = await FileRecordStore(store.base_dir).create(make_record())

    assert await store.find_pending(USER) is None

    await store.repair()

    assert (await store.find_pending(USER)).id == record.id
