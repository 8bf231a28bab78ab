"""In-memory purchase sessions keyed by user.

The registry is the fast path of the purchase state machine. It is never
authoritative about whether a purchase is still open: callers hold the
user's lock, re-read the record store and purge sessions whose pending
record has disappeared.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core import get_logger
from database.models import PurchaseRecord, parse_timestamp
from utils.locks import KeyedLocks

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class PendingPurchase:
    item_count: int
    total_amount: int


@dataclass(slots=True)
class PurchaseSession:
    user: str
    record_id: str
    pending_purchase: PendingPurchase
    opened_at: datetime
    awaiting_receipt: bool = True
    failed_attempts: int = 0
    saved_receipt_ref: Optional[str] = None

    def deadline(self, timeout: timedelta) -> datetime:
        return self.opened_at + timeout

    def is_expired(self, now: datetime, timeout: timedelta) -> bool:
        return now - self.opened_at > timeout

    def remaining_minutes(self, now: datetime, timeout: timedelta) -> int:
        remaining = self.deadline(timeout) - now
        return max(0, int(remaining.total_seconds() // 60))

    @classmethod
    def from_record(cls, record: PurchaseRecord) -> "PurchaseSession":
        """Rebuild a session for a pending record, e.g. after a restart.

        The attempt counter comes from the record, so a restart does not
        hand out a fresh attempt budget.
        """
        opened_at = parse_timestamp(record.receipt_received_at) or parse_timestamp(record.created_at)
        return cls(
            user=record.user,
            record_id=record.id,
            pending_purchase=PendingPurchase(record.item_count, record.total_amount),
            opened_at=opened_at,
            failed_attempts=record.failed_attempts,
            saved_receipt_ref=record.receipt_ref,
        )


class SessionStore(ABC):
    """Storage for purchase sessions; swap for a shared store when scaling out."""

    @abstractmethod
    async def get(self, user: str) -> Optional[PurchaseSession]:
        ...

    @abstractmethod
    async def set(self, session: PurchaseSession) -> None:
        ...

    @abstractmethod
    async def delete(self, user: str) -> Optional[PurchaseSession]:
        ...

    @abstractmethod
    async def items(self) -> List[PurchaseSession]:
        """Snapshot of all sessions."""


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, PurchaseSession] = {}

    async def get(self, user: str) -> Optional[PurchaseSession]:
        session = self._sessions.get(user)
        # Callers mutate their copy and save it back explicitly
        return replace(session) if session is not None else None

    async def set(self, session: PurchaseSession) -> None:
        self._sessions[session.user] = replace(session)

    async def delete(self, user: str) -> Optional[PurchaseSession]:
        return self._sessions.pop(user, None)

    async def items(self) -> List[PurchaseSession]:
        return [replace(session) for session in self._sessions.values()]


class SessionRegistry:
    """Owns the session store and the per-user mutex."""

    def __init__(self, store: Optional[SessionStore] = None) -> None:
        self.store = store or InMemorySessionStore()
        self._locks = KeyedLocks()

    def lock(self, user: str) -> AbstractAsyncContextManager[None]:
        """Mutual exclusion for every purchase transition of ``user``."""
        return self._locks.hold(user)

    def is_locked(self, user: str) -> bool:
        return self._locks.locked(user)

    async def get(self, user: str) -> Optional[PurchaseSession]:
        return await self.store.get(user)

    async def save(self, session: PurchaseSession) -> None:
        await self.store.set(session)

    async def purge(self, user: str, record_id: Optional[str] = None) -> bool:
        """Drop the user's session; with ``record_id`` only if it tracks that record."""
        session = await self.store.get(user)
        if session is None:
            return False
        if record_id is not None and session.record_id != record_id:
            return False
        await self.store.delete(user)
        logger.debug("Session purged", extra={"user": user, "record_id": session.record_id})
        return True

    async def sessions(self) -> List[PurchaseSession]:
        return await self.store.items()

    async def count(self) -> int:
        return len(await self.store.items())
