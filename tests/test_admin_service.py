"""Tests for admin approve/reject/block and the read models."""

import pytest

from core.constants import CancelReason, PurchaseStatus
from core.exceptions import LedgerError, RecordNotFoundError, RecordNotPendingError, ValidationError
from services.admin_service import ApprovalOutcome
from services.ledger_client import RegistrationResult
from services.purchase_session import MessageOutcome
from tests.conftest import USER, OTHER_USER, image_message, purchase_text, text_message


async def open_with_receipt(controller):
    await controller.handle_message(text_message(purchase_text()))
    await controller.handle_message(image_message())
    return await controller.store.find_pending(USER)


@pytest.mark.asyncio
async def test_approve_completes_record_and_purges_session(controller, admin_service, store, registry, transport, push):
    record = await open_with_receipt(controller)

    approved = await admin_service.approve(
        record.id, ["001", "002"], {"external_purchase_id": "ext-9", "total_numbers": 2}
    )

    assert approved.status == "completed"
    assert approved.assigned_numbers == ["001", "002"]
    assert approved.external_purchase_id == "ext-9"
    assert approved.approved_at is not None
    assert await registry.get(USER) is None
    assert await store.find_pending(USER) is None
    assert "001, 002" in transport.texts_for(USER)[-1]
    assert push.names()[-1] == "purchase_approved"


@pytest.mark.asyncio
async def test_approve_twice_reports_not_pending(controller, admin_service):
    record = await open_with_receipt(controller)
    await admin_service.approve(record.id, ["001"])

    with pytest.raises(RecordNotPendingError):
        await admin_service.approve(record.id, ["002"])
    with pytest.raises(RecordNotPendingError):
        await admin_service.reject(record.id, "late")


@pytest.mark.asyncio
async def test_unknown_record_is_not_found(admin_service):
    with pytest.raises(RecordNotFoundError):
        await admin_service.approve("purchase_1_nothing", ["001"])


@pytest.mark.asyncio
async def test_reject_cancels_with_default_reason(controller, admin_service, store, registry, transport, push):
    record = await open_with_receipt(controller)

    rejected = await admin_service.reject(record.id, "   ")

    assert rejected.status == "canceled"
    assert rejected.rejection_reason == CancelReason.INVALID_RECEIPT
    assert await registry.get(USER) is None
    assert "Purchase rejected" in transport.texts_for(USER)[-1]
    assert push.names()[-1] == "purchase_rejected"


@pytest.mark.asyncio
async def test_user_can_buy_again_after_approval(controller, admin_service):
    record = await open_with_receipt(controller)
    await admin_service.approve(record.id, ["001"])

    outcome = await controller.handle_message(text_message(purchase_text()))

    assert outcome is MessageOutcome.SESSION_OPENED


@pytest.mark.asyncio
async def test_approve_with_ledger_uses_assigned_numbers(controller, admin_service, ledger):
    record = await open_with_receipt(controller)

    result = await admin_service.approve_with_ledger(record.id)

    assert result.outcome is ApprovalOutcome.APPROVED
    assert result.record.assigned_numbers == ["001", "002"]
    assert result.record.external_purchase_id == "ext-1"
    assert ledger.register_calls[0]["quantity"] == 10
    assert ledger.register_calls[0]["purchase_id"] == record.id


@pytest.mark.asyncio
async def test_ledger_user_not_found_flags_intervention(controller, admin_service, ledger, store, registry, transport, push, clock):
    record = await open_with_receipt(controller)
    ledger.registration = RegistrationResult(success=False, error="User not found", user_not_found=True)

    result = await admin_service.approve_with_ledger(record.id)

    assert result.outcome is ApprovalOutcome.INTERVENTION_REQUIRED
    stored = await store.find_by_id(record.id)
    assert stored.status == "pending"
    assert stored.intervention_required is True
    assert stored.intervention_error == "User not found"
    assert "ATTENTION REQUIRED" in transport.texts_for(USER)[-1]
    assert push.names()[-1] == "intervention_required"

    clock.advance(hours=3)
    await controller.reconcile_user(USER)
    assert (await store.find_by_id(record.id)).status == "pending"

    approved = await admin_service.approve(record.id, ["010"])
    assert approved.intervention_required is False
    assert await registry.get(USER) is None


@pytest.mark.asyncio
async def test_other_ledger_errors_raise(controller, admin_service, ledger, store):
    record = await open_with_receipt(controller)
    ledger.registration = RegistrationResult(success=False, error="HTTP 500")

    with pytest.raises(LedgerError):
        await admin_service.approve_with_ledger(record.id)
    assert (await store.find_by_id(record.id)).status == "pending"


@pytest.mark.asyncio
async def test_block_cancels_pending_and_silences_user(controller, admin_service, store, registry, transport, push):
    record = await open_with_receipt(controller)

    canceled = await admin_service.block_user(USER, "chargeback")

    assert [r.id for r in canceled] == [record.id]
    stored = await store.find_by_id(record.id)
    assert stored.rejection_reason == "user blocked: chargeback"
    assert await registry.get(USER) is None
    assert "user_blocked" in push.names()
    assert "blocked" in transport.texts_for(USER)[-1]

    sent_before = len(transport.texts)
    outcome = await controller.handle_message(text_message(purchase_text()))
    assert outcome is MessageOutcome.BLOCKED
    assert len(transport.texts) == sent_before

    assert await admin_service.unblock_user(USER) is True
    outcome = await controller.handle_message(text_message(purchase_text()))
    assert outcome is MessageOutcome.SESSION_OPENED


@pytest.mark.asyncio
async def test_block_requires_reason(admin_service):
    with pytest.raises(ValidationError):
        await admin_service.block_user(USER, "  ")


@pytest.mark.asyncio
async def test_statistics(controller, admin_service):
    first = await open_with_receipt(controller)
    await admin_service.approve(first.id, ["001"])
    await controller.handle_message(text_message(purchase_text(items=5, amount="5,000")))
    await controller.handle_message(text_message(purchase_text(items=2, amount="2,000"), user=OTHER_USER))
    other = await controller.store.find_pending(OTHER_USER)
    await admin_service.reject(other.id, "no payment")

    stats = await admin_service.statistics()

    assert stats["pending"] == 1
    assert stats["completed"] == 1
    assert stats["canceled"] == 1
    assert stats["total"] == 3
    assert stats["revenue"] == 10000
    assert stats["items_sold"] == 10
    assert stats["average_purchase"] == 10000
    assert stats["active_sessions"] == 1


@pytest.mark.asyncio
async def test_list_purchases_by_status(controller, admin_service):
    await controller.handle_message(text_message(purchase_text()))

    pending = await admin_service.list_purchases("pending")
    assert [r.user for r in pending] == [USER]
    assert await admin_service.list_purchases(PurchaseStatus.COMPLETED) == []
    with pytest.raises(ValidationError):
        await admin_service.list_purchases("archived")


@pytest.mark.asyncio
async def test_send_message_and_transport_status(admin_service, transport):
    assert await admin_service.send_message(USER, "hello") is True
    assert transport.texts_for(USER) == ["hello"]

    transport.connected = False
    assert admin_service.transport_status() == {"connected": False}
    assert await admin_service.send_message(USER, "again") is False
    with pytest.raises(ValidationError):
        await admin_service.send_message(USER, "")
