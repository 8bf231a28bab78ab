"""Services package."""

from .async_runner import set_main_loop, get_main_loop, run_coroutine_sync, submit_coroutine
from .purchase_detector import ExtractedPurchase, PurchaseDetector
from .session_registry import (
    InMemorySessionStore,
    PendingPurchase,
    PurchaseSession,
    SessionRegistry,
    SessionStore,
)
from .transport import ChatTransport, InboundImage, InboundMessage, OfflineTransport
from .push_channel import NullPushChannel, PushChannel, SocketIOPushChannel
from .receipt_storage import ReceiptStorage, validate_receipt
from .raffle_catalog import Raffle, RaffleCatalog
from .ledger_client import LedgerClient, RegistrationResult, ValidationResult
from .purchase_session import (
    CancelResult,
    MessageOutcome,
    PurchaseSessionController,
    Reconciliation,
    SessionSettings,
)
from .expiry_sweeper import ExpirySweeper
from .admin_service import ApprovalOutcome, ApprovalResult, PurchaseAdminService

__all__ = [
    "set_main_loop",
    "get_main_loop",
    "run_coroutine_sync",
    "submit_coroutine",
    "ExtractedPurchase",
    "PurchaseDetector",
    "InMemorySessionStore",
    "PendingPurchase",
    "PurchaseSession",
    "SessionRegistry",
    "SessionStore",
    "ChatTransport",
    "InboundImage",
    "InboundMessage",
    "OfflineTransport",
    "NullPushChannel",
    "PushChannel",
    "SocketIOPushChannel",
    "ReceiptStorage",
    "validate_receipt",
    "Raffle",
    "RaffleCatalog",
    "LedgerClient",
    "RegistrationResult",
    "ValidationResult",
    # Purchase funnel
    "CancelResult",
    "MessageOutcome",
    "PurchaseSessionController",
    "Reconciliation",
    "SessionSettings",
    "ExpirySweeper",
    "ApprovalOutcome",
    "ApprovalResult",
    "PurchaseAdminService",
]
