"""Tests for the periodic expiry sweep."""

import asyncio

import pytest

from core.constants import CancelReason, PurchaseStatus
from services.expiry_sweeper import ExpirySweeper
from tests.conftest import USER, OTHER_USER, purchase_text, text_message


@pytest.mark.asyncio
async def test_sweep_expires_abandoned_session(controller, store, registry, transport, clock):
    await controller.handle_message(text_message(purchase_text()))
    record = await store.find_pending(USER)
    sweeper = ExpirySweeper(controller)

    clock.advance(minutes=61)
    counts = await sweeper.sweep_once()

    assert counts == {"expired": 1}
    stored = await store.find_by_id(record.id)
    assert stored.status == "canceled"
    assert stored.rejection_reason == CancelReason.EXPIRED
    assert await registry.get(USER) is None
    assert "Purchase expired" in transport.texts_for(USER)[-1]


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_sessions_alone(controller, store, clock):
    await controller.handle_message(text_message(purchase_text()))
    clock.advance(minutes=30)

    counts = await ExpirySweeper(controller).sweep_once()

    assert counts == {"active": 1}
    assert await store.find_pending(USER) is not None


@pytest.mark.asyncio
async def test_sweep_purges_sessions_resolved_by_admin(controller, admin_service, store, registry, clock):
    await controller.handle_message(text_message(purchase_text()))
    await controller.handle_message(text_message(purchase_text(), user=OTHER_USER))
    record = await store.find_pending(USER)
    # Admin decision recorded directly in the store, session still in memory
    await store.move_partition(record.id, PurchaseStatus.PENDING, PurchaseStatus.COMPLETED)

    clock.advance(minutes=61)
    counts = await ExpirySweeper(controller).sweep_once()

    assert counts == {"purged": 1, "expired": 1}
    assert (await store.find_by_id(record.id)).status == "completed"
    assert await registry.count() == 0


@pytest.mark.asyncio
async def test_sweep_picks_up_pending_records_without_session(controller, store, registry, clock):
    await controller.handle_message(text_message(purchase_text()))
    await registry.purge(USER)

    clock.advance(minutes=61)
    counts = await ExpirySweeper(controller).sweep_once()

    assert counts == {"expired": 1}
    assert await store.find_pending(USER) is None


@pytest.mark.asyncio
async def test_sweep_continues_after_a_failing_user(controller, store, clock, monkeypatch):
    await controller.handle_message(text_message(purchase_text()))
    await controller.handle_message(text_message(purchase_text(), user=OTHER_USER))
    clock.advance(minutes=61)

    original = controller.reconcile_user

    async def flaky(user):
        if user == USER:
            raise RuntimeError("disk on fire")
        return await original(user)

    monkeypatch.setattr(controller, "reconcile_user", flaky)
    counts = await ExpirySweeper(controller).sweep_once()

    assert counts == {"errors": 1, "expired": 1}
    assert await store.find_pending(USER) is not None
    assert await store.find_pending(OTHER_USER) is None


@pytest.mark.asyncio
async def test_start_and_stop(controller):
    sweeper = ExpirySweeper(controller, interval_seconds=0.01)

    await sweeper.start()
    assert sweeper.running
    await asyncio.sleep(0.05)
    await sweeper.stop()

    assert not sweeper.running
    assert sweeper.sweep_task is None
