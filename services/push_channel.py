"""Fire-and-forget dashboard events."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, TYPE_CHECKING

from core import get_logger
from core.constants import PushEvent
from database.models import PurchaseRecord, isoformat, utcnow

if TYPE_CHECKING:
    from web.websocket_manager import WebSocketManager

logger = get_logger(__name__)


def build_payload(record: Optional[PurchaseRecord] = None, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"timestamp": isoformat(utcnow())}
    if record is not None:
        payload["purchase"] = record.to_dict()
    payload.update(extra)
    return payload


class PushChannel(ABC):
    @abstractmethod
    async def emit(self, event: PushEvent, payload: Dict[str, Any]) -> None:
        """Deliver ``event``; must never raise."""

    async def emit_record(self, event: PushEvent, record: PurchaseRecord, **extra: Any) -> None:
        await self.emit(event, build_payload(record, **extra))


class NullPushChannel(PushChannel):
    """Used when no dashboard is attached."""

    async def emit(self, event: PushEvent, payload: Dict[str, Any]) -> None:
        logger.debug(f"Push event {event.value} dropped (no dashboard)")


class SocketIOPushChannel(PushChannel):
    """Emits into the admin dashboard room through Flask-SocketIO."""

    def __init__(self, manager: WebSocketManager) -> None:
        self.manager = manager

    async def emit(self, event: PushEvent, payload: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self.manager.broadcast_event, event.value, payload)
        except Exception as e:
            logger.error(
                f"Failed to push {event.value}: {e}",
                exc_info=True,
                extra={"event": event.value},
            )
