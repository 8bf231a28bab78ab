"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from core.constants import PushEvent
from database import Blocklist, FileRecordStore
from services.admin_service import PurchaseAdminService
from services.ledger_client import RegistrationResult, ValidationResult
from services.purchase_session import PurchaseSessionController, SessionSettings
from services.push_channel import PushChannel
from services.raffle_catalog import RaffleCatalog
from services.receipt_storage import ReceiptStorage
from services.session_registry import SessionRegistry
from services.transport import ChatTransport, InboundImage, InboundMessage

USER = "573001112233"
OTHER_USER = "573009998877"

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"receipt" * 64


def purchase_text(items: int = 10, amount: str = "10,000") -> str:
    return (
        "I want to buy these stickers!\n"
        f"Sticker Rueda y Gana: {items} items - ${amount}\n"
        f"Total items: {items}\n"
        f"Total amount: ${amount}"
    )


def text_message(text: str, user: str = USER) -> InboundMessage:
    return InboundMessage(sender_id=user, display_name="Ana", text=text)


def image_message(
    user: str = USER,
    mime_type: str = "image/jpeg",
    content: bytes = JPEG_BYTES,
    size: Optional[int] = None,
) -> InboundMessage:
    image = InboundImage(
        mime_type=mime_type,
        size=len(content) if size is None else size,
        content=content,
    )
    return InboundMessage(sender_id=user, display_name="Ana", image=image)


class FakeTransport(ChatTransport):
    def __init__(self) -> None:
        self.texts: List[Tuple[str, str]] = []
        self.images: List[Tuple[str, bytes, str]] = []
        self.connected = True
        self.fail_sends = False

    async def send_text(self, user: str, text: str) -> None:
        if self.fail_sends:
            raise ConnectionError("send failed")
        self.texts.append((user, text))

    async def send_image(self, user: str, content: bytes, caption: str) -> None:
        if self.fail_sends:
            raise ConnectionError("send failed")
        self.images.append((user, content, caption))

    def is_connected(self) -> bool:
        return self.connected

    def texts_for(self, user: str) -> List[str]:
        return [text for to, text in self.texts if to == user]


class FakeLedger:
    def __init__(self) -> None:
        self.validation = ValidationResult(valid=True, purchase_allowed=True)
        self.registration = RegistrationResult(
            success=True,
            external_purchase_id="ext-1",
            assigned_numbers=["001", "002"],
            total_numbers=2,
        )
        self.validate_calls: List[Dict[str, Any]] = []
        self.register_calls: List[Dict[str, Any]] = []

    async def validate_user(self, user, raffle_id, text, is_purchase, purchase_data=None):
        self.validate_calls.append({
            "user": user,
            "raffle_id": raffle_id,
            "is_purchase": is_purchase,
            "purchase_data": purchase_data,
        })
        return self.validation

    async def register_purchase(self, user, raffle_id, quantity, amount, purchase_id):
        self.register_calls.append({
            "user": user,
            "raffle_id": raffle_id,
            "quantity": quantity,
            "amount": amount,
            "purchase_id": purchase_id,
        })
        return self.registration

    async def close(self) -> None:
        pass


class RecordingPushChannel(PushChannel):
    def __init__(self) -> None:
        self.events: List[Tuple[PushEvent, Dict[str, Any]]] = []

    async def emit(self, event: PushEvent, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> List[str]:
        return [event.value for event, _ in self.events]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def push():
    return RecordingPushChannel()


@pytest.fixture
def store(tmp_path):
    return FileRecordStore(tmp_path / "purchases")


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def receipts(tmp_path):
    return ReceiptStorage(tmp_path / "receipts")


@pytest.fixture
def blocklist(tmp_path):
    return Blocklist(tmp_path / "blocked_users.json")


@pytest.fixture
def catalog(tmp_path):
    return RaffleCatalog(tmp_path / "raffles.json")


@pytest.fixture
def settings():
    return SessionSettings(timeout=timedelta(minutes=60), max_attempts=3, max_receipt_size=1024 * 1024)


@pytest.fixture
def controller(store, registry, transport, ledger, receipts, catalog, blocklist, push, settings, clock):
    return PurchaseSessionController(
        store=store,
        registry=registry,
        transport=transport,
        ledger=ledger,
        receipts=receipts,
        catalog=catalog,
        blocklist=blocklist,
        push=push,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def admin_service(store, registry, transport, ledger, blocklist, push):
    return PurchaseAdminService(
        store=store,
        registry=registry,
        transport=transport,
        ledger=ledger,
        blocklist=blocklist,
        push=push,
        support_phone="+57 3103134816",
    )
