"""Admin decisions on purchases and the read models behind the dashboard.

Approve, reject and block change records without going through the
session controller. They take the same per-user lock and purge the
user's session before returning, so a sweep or a duplicate-purchase
check can never observe a resolved record with a live session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from core import get_logger
from core.constants import CancelReason, PurchaseStatus, PushEvent
from core.exceptions import (
    LedgerError,
    RecordNotFoundError,
    RecordNotPendingError,
    ValidationError,
)
from database.blocklist import Blocklist
from database.models import PurchaseRecord, isoformat, utcnow
from database.record_store import RecordStore
from services import messages
from services.ledger_client import LedgerClient
from services.metrics import ADMIN_DECISIONS, CANCELLATIONS
from services.push_channel import NullPushChannel, PushChannel, build_payload
from services.session_registry import SessionRegistry
from services.transport import ChatTransport
from utils.validators import validate_rejection_reason

logger = get_logger(__name__)


class ApprovalOutcome(str, Enum):
    APPROVED = "approved"
    INTERVENTION_REQUIRED = "intervention_required"


@dataclass(slots=True)
class ApprovalResult:
    outcome: ApprovalOutcome
    record: PurchaseRecord


class PurchaseAdminService:
    """Operations the admin panel performs on purchase records."""

    def __init__(
        self,
        *,
        store: RecordStore,
        registry: SessionRegistry,
        transport: ChatTransport,
        ledger: Optional[LedgerClient] = None,
        blocklist: Optional[Blocklist] = None,
        push: Optional[PushChannel] = None,
        support_phone: str = "",
    ) -> None:
        self.store = store
        self.registry = registry
        self.transport = transport
        self.ledger = ledger
        self.blocklist = blocklist
        self.push = push or NullPushChannel()
        self.support_phone = support_phone

    async def _require_pending(self, record_id: str) -> PurchaseRecord:
        record = await self.store.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        if record.status != PurchaseStatus.PENDING.value:
            raise RecordNotPendingError(record_id, record.status)
        return record

    async def approve(
        self,
        record_id: str,
        assigned_numbers: Iterable[Any],
        external_data: Optional[Mapping[str, Any]] = None,
    ) -> PurchaseRecord:
        """Move a pending record to completed with its raffle numbers.

        Raises ``RecordNotPendingError`` when the record was already resolved.
        """
        record = await self._require_pending(record_id)
        numbers = [str(number) for number in assigned_numbers]
        external_data = external_data or {}

        async with self.registry.lock(record.user):
            record = await self.store.move_partition(
                record_id,
                PurchaseStatus.PENDING,
                PurchaseStatus.COMPLETED,
                {
                    "approved_at": isoformat(utcnow()),
                    "assigned_numbers": numbers,
                    "external_purchase_id": external_data.get("external_purchase_id"),
                    "total_numbers": external_data.get("total_numbers", len(numbers)),
                    "intervention_required": False,
                    "intervention_error": None,
                },
            )
            await self.registry.purge(record.user, record_id)

        ADMIN_DECISIONS.labels(decision="approved").inc()
        logger.info(
            f"✅ Purchase approved with {len(numbers)} numbers",
            extra={"user": record.user, "record_id": record_id, "status": record.status},
        )
        await self.push.emit_record(PushEvent.PURCHASE_APPROVED, record)
        await self._notify(
            record.user,
            messages.purchase_approved(record.item_count, record.total_amount, numbers),
        )
        return record

    async def reject(self, record_id: str, reason: Optional[str] = None) -> PurchaseRecord:
        record = await self._require_pending(record_id)
        reason = validate_rejection_reason(reason) or CancelReason.INVALID_RECEIPT

        async with self.registry.lock(record.user):
            record = await self.store.move_partition(
                record_id,
                PurchaseStatus.PENDING,
                PurchaseStatus.CANCELED,
                {"rejection_reason": reason, "canceled_at": isoformat(utcnow())},
            )
            await self.registry.purge(record.user, record_id)

        ADMIN_DECISIONS.labels(decision="rejected").inc()
        logger.info(
            "❌ Purchase rejected",
            extra={"user": record.user, "record_id": record_id, "reason": reason},
        )
        await self.push.emit_record(PushEvent.PURCHASE_REJECTED, record)
        await self._notify(record.user, messages.purchase_rejected(reason))
        return record

    async def approve_with_ledger(self, record_id: str) -> ApprovalResult:
        """Register the purchase with the ledger and approve it with the numbers it assigns."""
        if self.ledger is None:
            raise LedgerError("No ledger client configured")
        record = await self._require_pending(record_id)

        result = await self.ledger.register_purchase(
            record.user, record.raffle_id, record.item_count, record.total_amount, record.id
        )
        if result.success:
            approved = await self.approve(
                record_id,
                result.assigned_numbers,
                {
                    "external_purchase_id": result.external_purchase_id,
                    "total_numbers": result.total_numbers,
                },
            )
            return ApprovalResult(ApprovalOutcome.APPROVED, approved)

        if not result.user_not_found:
            raise LedgerError(f"Ledger registration failed: {result.error}")

        async with self.registry.lock(record.user):
            flagged = await self.store.update_pending(
                record_id,
                {"intervention_required": True, "intervention_error": result.error},
            )
        ADMIN_DECISIONS.labels(decision="intervention").inc()
        logger.warning(
            f"⚠️ Manual intervention required: {result.error}",
            extra={"user": record.user, "record_id": record_id},
        )
        await self.push.emit_record(PushEvent.INTERVENTION_REQUIRED, flagged, error=result.error)
        await self._notify(record.user, messages.intervention_required(self.support_phone))
        return ApprovalResult(ApprovalOutcome.INTERVENTION_REQUIRED, flagged)

    async def block_user(self, user: str, reason: str) -> List[PurchaseRecord]:
        """Block ``user`` and cancel their pending purchases; returns the canceled records."""
        reason = validate_rejection_reason(reason)
        if not reason:
            raise ValidationError("A reason is required to block a user")
        if self.blocklist is None:
            raise ValidationError("Blocking is not configured")

        await self.blocklist.add(user, reason)
        cancel_reason = f"{CancelReason.USER_BLOCKED}: {reason}"
        canceled: List[PurchaseRecord] = []

        async with self.registry.lock(user):
            for record in await self.store.list_pending_for_user(user):
                try:
                    canceled.append(
                        await self.store.move_partition(
                            record.id,
                            PurchaseStatus.PENDING,
                            PurchaseStatus.CANCELED,
                            {"rejection_reason": cancel_reason, "canceled_at": isoformat(utcnow())},
                        )
                    )
                except (RecordNotFoundError, RecordNotPendingError):
                    continue
            await self.registry.purge(user)

        for record in canceled:
            CANCELLATIONS.labels(reason=CancelReason.USER_BLOCKED).inc()
            await self.push.emit_record(PushEvent.PURCHASE_UPDATED, record)
        await self.push.emit(PushEvent.USER_BLOCKED, build_payload(user=user, reason=reason))
        logger.info(
            f"🚫 User blocked, {len(canceled)} pending purchases canceled",
            extra={"user": user, "reason": reason},
        )
        await self._notify(user, messages.user_blocked(reason))
        return canceled

    async def unblock_user(self, user: str) -> bool:
        if self.blocklist is None:
            return False
        removed = await self.blocklist.remove(user)
        if removed:
            logger.info("User unblocked", extra={"user": user})
        return removed

    async def get_purchase(self, record_id: str) -> PurchaseRecord:
        record = await self.store.find_by_id(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return record

    async def list_purchases(self, status: PurchaseStatus | str) -> List[PurchaseRecord]:
        try:
            status = PurchaseStatus(status)
        except ValueError as e:
            raise ValidationError(f"Unknown purchase status: {status}") from e
        records = await self.store.list_by_status(status)
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def statistics(self) -> Dict[str, Any]:
        pending = await self.store.list_by_status(PurchaseStatus.PENDING)
        completed = await self.store.list_by_status(PurchaseStatus.COMPLETED)
        canceled = await self.store.list_by_status(PurchaseStatus.CANCELED)

        revenue = sum(r.total_amount for r in completed)
        return {
            "pending": len(pending),
            "completed": len(completed),
            "canceled": len(canceled),
            "total": len(pending) + len(completed) + len(canceled),
            "awaiting_review": sum(1 for r in pending if r.receipt_ref),
            "intervention_required": sum(1 for r in pending if r.intervention_required),
            "revenue": revenue,
            "items_sold": sum(r.item_count for r in completed),
            "average_purchase": round(revenue / len(completed), 2) if completed else 0,
            "active_sessions": await self.registry.count(),
        }

    async def send_message(self, user: str, text: str) -> bool:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text is required")
        return await self._notify(user, text)

    def transport_status(self) -> Dict[str, Any]:
        return {"connected": self.transport.is_connected()}

    async def _notify(self, user: str, text: str) -> bool:
        if not self.transport.is_connected():
            logger.warning("Transport not connected, notification dropped", extra={"user": user})
            return False
        try:
            await self.transport.send_text(user, text)
            return True
        except Exception as e:
            logger.error(f"Failed to notify user: {e}", exc_info=True, extra={"user": user})
            return False
