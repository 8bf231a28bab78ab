"""Per-user purchase session state machine.

States: ``IDLE -> AWAITING_RECEIPT -> {COMPLETED | CANCELED}``. A session
stays in ``AWAITING_RECEIPT`` while receipts are resubmitted, and after a
receipt is accepted it waits there for an admin decision.

Every transition for a user runs under that user's lock and starts by
reconciling the in-memory session with the record store. Admin actions
change records without going through this controller, so a session
whose pending record is gone is treated as already resolved and purged
before anything else is decided.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple

from core import get_logger
from core.constants import (
    CancelReason,
    PurchaseStatus,
    PushEvent,
    ReceiptLimits,
    SessionDefaults,
)
from core.exceptions import (
    ReceiptStorageError,
    ReceiptValidationError,
    RecordNotFoundError,
    RecordNotPendingError,
    RepositoryError,
)
from database.blocklist import Blocklist
from database.models import PurchaseRecord, isoformat, new_record_id, utcnow
from database.record_store import RecordStore
from services import messages
from services.ledger_client import LedgerClient
from services.metrics import CANCELLATIONS, RECEIPTS, SESSIONS_OPENED
from services.purchase_detector import PurchaseDetector
from services.push_channel import NullPushChannel, PushChannel
from services.raffle_catalog import Raffle, RaffleCatalog
from services.receipt_storage import ReceiptStorage, validate_receipt
from services.session_registry import PendingPurchase, PurchaseSession, SessionRegistry
from services.transport import ChatTransport, InboundImage, InboundMessage

logger = get_logger(__name__)


class MessageOutcome(str, Enum):
    """What handling one inbound message led to."""
    BLOCKED = "blocked"
    SESSION_OPENED = "session_opened"
    DUPLICATE_PURCHASE = "duplicate_purchase"
    INVALID_PURCHASE = "invalid_purchase"
    REGISTRATION_REQUIRED = "registration_required"
    PURCHASE_NOT_ALLOWED = "purchase_not_allowed"
    RECEIPT_ACCEPTED = "receipt_accepted"
    RECEIPT_REJECTED = "receipt_rejected"
    SESSION_CANCELED = "session_canceled"
    NO_ACTIVE_SESSION = "no_active_session"
    REMINDER_SENT = "reminder_sent"
    INFO_SENT = "info_sent"
    FAILED = "failed"


class Reconciliation(str, Enum):
    """Result of comparing a user's session with the record store."""
    IDLE = "idle"
    ACTIVE = "active"
    REBUILT = "rebuilt"
    PURGED = "purged"
    EXPIRED = "expired"


class CancelResult(str, Enum):
    CANCELED = "canceled"
    ALREADY_RESOLVED = "already_resolved"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SessionSettings:
    timeout: timedelta = timedelta(minutes=SessionDefaults.TIMEOUT_MINUTES)
    max_attempts: int = SessionDefaults.MAX_ATTEMPTS
    max_receipt_size: int = ReceiptLimits.MAX_FILE_SIZE
    allowed_mime_types: Tuple[str, ...] = ReceiptLimits.ALLOWED_MIME_TYPES
    payment_key: str = "@DAVISTIKRUEDGANA"
    payment_image_path: Optional[Path] = None
    support_phone: str = "+57 3103134816"

    @property
    def timeout_minutes(self) -> int:
        return int(self.timeout.total_seconds() // 60)

    @classmethod
    def from_config(cls, config) -> "SessionSettings":
        return cls(
            timeout=timedelta(minutes=config.purchase_timeout_minutes),
            max_attempts=config.max_receipt_attempts,
            max_receipt_size=config.max_file_size,
            allowed_mime_types=config.allowed_mime_types,
            payment_key=config.payment_key,
            payment_image_path=Path(config.payment_image_path) if config.payment_image_path else None,
            support_phone=config.support_phone,
        )


class PurchaseSessionController:
    """Drives the purchase funnel for inbound chat messages."""

    def __init__(
        self,
        *,
        store: RecordStore,
        registry: SessionRegistry,
        transport: ChatTransport,
        ledger: LedgerClient,
        receipts: ReceiptStorage,
        catalog: RaffleCatalog,
        blocklist: Optional[Blocklist] = None,
        push: Optional[PushChannel] = None,
        detector: Optional[PurchaseDetector] = None,
        settings: Optional[SessionSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry
        self.transport = transport
        self.ledger = ledger
        self.receipts = receipts
        self.catalog = catalog
        self.blocklist = blocklist
        self.push = push or NullPushChannel()
        self.detector = detector or PurchaseDetector()
        self.settings = settings or SessionSettings()
        self.clock = clock

    # ---- entry points ----

    async def handle_message(self, message: InboundMessage) -> MessageOutcome:
        user = message.sender_id
        if self.blocklist is not None and await self.blocklist.is_blocked(user):
            logger.info("Ignoring message from blocked user", extra={"user": user})
            return MessageOutcome.BLOCKED

        async with self.registry.lock(user):
            session, _ = await self._reconcile(user)

            if message.image is not None:
                if session is None:
                    await self._send_text(user, messages.no_active_purchase())
                    return MessageOutcome.NO_ACTIVE_SESSION
                return await self._handle_receipt(session, message.image)

            text = (message.text or "").strip()
            if self.detector.classify(text):
                if session is not None:
                    await self._notify_active(session)
                    return MessageOutcome.DUPLICATE_PURCHASE
                return await self._open_session(message, text)

            if session is not None:
                if session.saved_receipt_ref:
                    await self._send_text(user, messages.under_review_reminder())
                else:
                    remaining = session.remaining_minutes(self.clock(), self.settings.timeout)
                    await self._send_text(user, messages.receipt_reminder(remaining))
                return MessageOutcome.REMINDER_SENT

            await self._send_text(user, messages.info_message(self.settings.support_phone))
            return MessageOutcome.INFO_SENT

    async def reconcile_user(self, user: str) -> Reconciliation:
        """Bring ``user``'s session in line with the store; used by the sweeper."""
        async with self.registry.lock(user):
            _, outcome = await self._reconcile(user)
            return outcome

    async def restore_sessions(self) -> int:
        """Rebuild sessions for every pending record, e.g. after a restart."""
        users = {record.user for record in await self.store.list_by_status(PurchaseStatus.PENDING)}
        restored = 0
        for user in users:
            outcome = await self.reconcile_user(user)
            if outcome in (Reconciliation.ACTIVE, Reconciliation.REBUILT):
                restored += 1
        if restored:
            logger.info(f"♻️ Restored {restored} purchase sessions from pending records")
        return restored

    # ---- reconciliation ----

    async def _reconcile(self, user: str) -> Tuple[Optional[PurchaseSession], Reconciliation]:
        """Caller must hold the user's lock."""
        session = await self.registry.get(user)
        record = await self.store.find_pending(user)

        if record is None:
            if session is not None:
                await self.registry.purge(user)
                logger.info(
                    "🧹 Stale session purged, purchase resolved elsewhere",
                    extra={"user": user, "record_id": session.record_id},
                )
                return None, Reconciliation.PURGED
            return None, Reconciliation.IDLE

        outcome = Reconciliation.ACTIVE
        if session is None or session.record_id != record.id:
            session = PurchaseSession.from_record(record)
            await self.registry.save(session)
            outcome = Reconciliation.REBUILT
            logger.info("Session rebuilt from pending record", extra={"user": user, "record_id": record.id})

        if record.intervention_required:
            # Waiting on a human, never expired automatically
            return session, outcome

        if session.is_expired(self.clock(), self.settings.timeout):
            result = await self._cancel(
                session,
                CancelReason.EXPIRED,
                messages.session_expired(
                    record.item_count, record.total_amount, self.settings.timeout_minutes
                ),
            )
            if result is CancelResult.FAILED:
                return session, outcome
            return None, (Reconciliation.EXPIRED if result is CancelResult.CANCELED else Reconciliation.PURGED)

        return session, outcome

    # ---- transitions ----

    async def _open_session(self, message: InboundMessage, text: str) -> MessageOutcome:
        user = message.sender_id
        extracted = self.detector.extract(text)
        if not extracted.is_valid:
            logger.info(
                f"Purchase message with unusable data: {extracted.error or 'non-positive fields'}",
                extra={"user": user},
            )
            await self._send_text(user, messages.invalid_purchase_data())
            return MessageOutcome.INVALID_PURCHASE

        raffle = await self.catalog.detect(text)
        validation = await self.ledger.validate_user(
            user, raffle.id, text, True, extracted.to_payload()
        )
        if not validation.valid:
            await self._send_text(user, messages.registration_required(self.settings.support_phone))
            return MessageOutcome.REGISTRATION_REQUIRED
        if not validation.purchase_allowed:
            await self._send_text(user, messages.purchase_not_allowed(self.settings.support_phone))
            return MessageOutcome.PURCHASE_NOT_ALLOWED

        now = self.clock()
        record = PurchaseRecord(
            id=new_record_id(),
            user=user,
            display_name=message.display_name,
            raffle_id=raffle.id,
            raffle_name=raffle.name,
            item_count=extracted.item_count,
            total_amount=extracted.total_amount,
            created_at=isoformat(now),
            items=[asdict(item) for item in extracted.items],
        )
        try:
            record = await self.store.create(record)
        except RepositoryError as e:
            logger.error(f"Failed to create purchase record: {e}", exc_info=True, extra={"user": user})
            await self._send_text(user, messages.generic_error())
            return MessageOutcome.FAILED

        session = PurchaseSession(
            user=user,
            record_id=record.id,
            pending_purchase=PendingPurchase(record.item_count, record.total_amount),
            opened_at=now,
        )
        await self.registry.save(session)
        SESSIONS_OPENED.inc()
        logger.info(
            f"🛒 Purchase session opened: {record.item_count} items, {record.total_amount}",
            extra={"user": user, "record_id": record.id},
        )

        await self.push.emit_record(PushEvent.NEW_PURCHASE, record)
        await self._send_confirmation(record, raffle)
        await self._send_text(user, messages.payment_key(self.settings.payment_key))
        return MessageOutcome.SESSION_OPENED

    async def _handle_receipt(self, session: PurchaseSession, image: InboundImage) -> MessageOutcome:
        user = session.user
        limits = {
            "max_size": self.settings.max_receipt_size,
            "allowed_mime_types": self.settings.allowed_mime_types,
        }
        try:
            validate_receipt(image.mime_type, image.size, **limits)
            content = await self._read_image(image, user)
            validate_receipt(image.mime_type, len(content), **limits)
            ref = await self.receipts.save(
                user, content, image.mime_type, existing_ref=session.saved_receipt_ref
            )
        except ReceiptValidationError as e:
            return await self._register_failed_attempt(session, str(e))
        except ReceiptStorageError as e:
            logger.error(f"Receipt could not be stored: {e}", exc_info=True, extra={"user": user})
            return await self._register_failed_attempt(session, "the image could not be saved")

        now = self.clock()
        try:
            record = await self.store.update_pending(
                session.record_id,
                {"receipt_ref": ref, "receipt_received_at": isoformat(now), "failed_attempts": 0},
            )
        except (RecordNotFoundError, RecordNotPendingError):
            # Resolved while the image was being stored
            await self.registry.purge(user)
            if ref != session.saved_receipt_ref:
                await self._discard_receipt(ref, user)
            await self._send_text(user, messages.no_active_purchase())
            return MessageOutcome.NO_ACTIVE_SESSION
        except RepositoryError as e:
            logger.error(
                f"Failed to attach receipt: {e}",
                exc_info=True,
                extra={"user": user, "record_id": session.record_id},
            )
            if ref != session.saved_receipt_ref:
                await self._discard_receipt(ref, user)
            await self._send_text(user, messages.generic_error())
            return MessageOutcome.FAILED

        replaced = session.saved_receipt_ref is not None
        if replaced and ref != session.saved_receipt_ref:
            # Format changed, the old file is no longer referenced
            await self._discard_receipt(session.saved_receipt_ref, user)
        session.failed_attempts = 0
        session.saved_receipt_ref = ref
        # Accepting a receipt restarts the window the admin has to act in
        session.opened_at = now
        await self.registry.save(session)
        RECEIPTS.labels(outcome="accepted").inc()
        logger.info(
            f"🧾 Receipt {'replaced' if replaced else 'accepted'}",
            extra={"user": user, "record_id": record.id},
        )

        await self.push.emit_record(PushEvent.RECEIPT_RECEIVED, record)
        await self._send_text(user, messages.receipt_received(replaced))
        return MessageOutcome.RECEIPT_ACCEPTED

    async def _register_failed_attempt(self, session: PurchaseSession, reason: str) -> MessageOutcome:
        session.failed_attempts += 1
        RECEIPTS.labels(outcome="rejected").inc()
        logger.info(
            f"Receipt rejected: {reason}",
            extra={"user": session.user, "record_id": session.record_id, "attempt": session.failed_attempts},
        )

        max_attempts = self.settings.max_attempts
        if session.failed_attempts >= max_attempts:
            result = await self._cancel(
                session,
                CancelReason.ATTEMPTS_EXCEEDED,
                messages.attempts_exceeded(max_attempts),
                delete_receipts=True,
            )
            if result is CancelResult.FAILED:
                await self.registry.save(session)
                await self._send_text(session.user, messages.generic_error())
                return MessageOutcome.FAILED
            return MessageOutcome.SESSION_CANCELED

        await self.registry.save(session)
        await self._persist_attempts(session)
        await self._send_text(
            session.user,
            messages.invalid_receipt(session.failed_attempts, max_attempts, reason),
        )
        return MessageOutcome.RECEIPT_REJECTED

    async def _persist_attempts(self, session: PurchaseSession) -> None:
        try:
            await self.store.update_pending(
                session.record_id, {"failed_attempts": session.failed_attempts}
            )
        except RepositoryError as e:
            logger.warning(
                f"Attempt count not persisted: {e}",
                extra={"user": session.user, "record_id": session.record_id},
            )

    async def _cancel(
        self,
        session: PurchaseSession,
        reason: str,
        user_text: str,
        *,
        delete_receipts: bool = False,
    ) -> CancelResult:
        """Move the session's record to canceled, purge the session, tell the user."""
        user = session.user
        try:
            record = await self.store.move_partition(
                session.record_id,
                PurchaseStatus.PENDING,
                PurchaseStatus.CANCELED,
                {"rejection_reason": reason, "canceled_at": isoformat(self.clock())},
            )
        except (RecordNotFoundError, RecordNotPendingError):
            await self.registry.purge(user)
            logger.info(
                "Purchase already resolved, nothing to cancel",
                extra={"user": user, "record_id": session.record_id},
            )
            return CancelResult.ALREADY_RESOLVED
        except RepositoryError as e:
            logger.error(
                f"Failed to cancel purchase: {e}",
                exc_info=True,
                extra={"user": user, "record_id": session.record_id},
            )
            return CancelResult.FAILED

        await self.registry.purge(user)
        if delete_receipts:
            await self._delete_unreferenced_receipts(user)
        CANCELLATIONS.labels(reason=reason).inc()
        logger.info(
            f"❌ Purchase canceled: {reason}",
            extra={"user": user, "record_id": record.id, "reason": reason},
        )

        await self.push.emit_record(PushEvent.PURCHASE_UPDATED, record)
        await self._send_text(user, user_text)
        return CancelResult.CANCELED

    async def _discard_receipt(self, ref: str, user: str) -> None:
        try:
            await self.receipts.delete(ref)
        except (OSError, ReceiptStorageError) as e:
            logger.warning(f"Could not delete receipt {ref}: {e}", extra={"user": user})

    async def _delete_unreferenced_receipts(self, user: str) -> int:
        """Delete the user's receipts, keeping those of completed purchases."""
        completed = await self.store.list_by_status(PurchaseStatus.COMPLETED)
        keep = [r.receipt_ref for r in completed if r.user == user and r.receipt_ref]
        return await self.receipts.delete_for_user(user, keep=keep)

    # ---- outbound helpers ----

    async def _notify_active(self, session: PurchaseSession) -> None:
        remaining = session.remaining_minutes(self.clock(), self.settings.timeout)
        attempts_left = max(0, self.settings.max_attempts - session.failed_attempts)
        await self._send_text(session.user, messages.active_purchase_notice(remaining, attempts_left))

    async def _send_confirmation(self, record: PurchaseRecord, raffle: Raffle) -> None:
        text = messages.order_confirmation(
            display_name=record.display_name,
            item_count=record.item_count,
            total_amount=record.total_amount,
            raffle_name=raffle.name,
            raffle_icon=raffle.icon,
            timeout_minutes=self.settings.timeout_minutes,
        )
        image_path = self.settings.payment_image_path
        if image_path is not None and image_path.is_file():
            try:
                content = await asyncio.to_thread(image_path.read_bytes)
                await self.transport.send_image(record.user, content, text)
                return
            except Exception as e:
                logger.warning(
                    f"Payment image not sent, falling back to text: {e}",
                    extra={"user": record.user},
                )
        await self._send_text(record.user, text)

    async def _send_text(self, user: str, text: str) -> bool:
        """Send without retrying; state has already been committed."""
        if not self.transport.is_connected():
            logger.warning("Transport not connected, message dropped", extra={"user": user})
            return False
        try:
            await self.transport.send_text(user, text)
            return True
        except Exception as e:
            logger.error(f"Failed to send message: {e}", exc_info=True, extra={"user": user})
            return False

    @staticmethod
    async def _read_image(image: InboundImage, user: str) -> bytes:
        try:
            return await image.read()
        except Exception as e:
            logger.warning(f"Receipt image download failed: {e}", extra={"user": user})
            raise ReceiptValidationError("the image could not be downloaded") from e
