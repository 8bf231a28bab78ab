"""Background sweep that expires purchase sessions past their deadline."""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Dict, Optional

from core import get_logger
from core.constants import PurchaseStatus, SessionDefaults
from services.metrics import ACTIVE_SESSIONS
from services.purchase_session import PurchaseSessionController, Reconciliation

logger = get_logger(__name__)


class ExpirySweeper:
    """Periodically reconciles every known user through the controller.

    Expiry itself happens inside the controller under the user's lock, so
    a sweep racing an admin decision or a new receipt sees the settled
    state. Users with a pending record but no session (lost on restart)
    are swept as well.
    """

    def __init__(
        self,
        controller: PurchaseSessionController,
        interval_seconds: float = SessionDefaults.SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.controller = controller
        self.registry = controller.registry
        self.store = controller.store
        self.interval = interval_seconds
        self.running = False
        self.sweep_task: Optional[asyncio.Task] = None

    async def _candidate_users(self) -> set[str]:
        users = {session.user for session in await self.registry.sessions()}
        try:
            pending = await self.store.list_by_status(PurchaseStatus.PENDING)
        except Exception as e:
            logger.warning(f"Could not list pending records for sweep: {e}")
        else:
            users.update(record.user for record in pending)
        return users

    async def sweep_once(self) -> Dict[str, int]:
        """Run one pass; returns how many users ended in each reconciliation state."""
        counts: Counter = Counter()
        for user in sorted(await self._candidate_users()):
            try:
                outcome = await self.controller.reconcile_user(user)
            except Exception as e:
                counts["errors"] += 1
                logger.error(f"Sweep failed for user: {e}", exc_info=True, extra={"user": user})
                continue
            counts[outcome.value] += 1

        ACTIVE_SESSIONS.set(await self.registry.count())
        expired = counts[Reconciliation.EXPIRED.value]
        if expired:
            logger.info(f"⏰ Expired {expired} purchase sessions")
        return dict(counts)

    async def sweep_loop(self) -> None:
        logger.info(f"🔄 Expiry sweep started (interval: {self.interval}s)")
        while self.running:
            try:
                await asyncio.sleep(self.interval)
                if self.running:
                    await self.sweep_once()
            except asyncio.CancelledError:
                logger.info("Expiry sweep cancelled")
                break
            except Exception as e:
                logger.error(f"Error in expiry sweep: {e}", exc_info=True)

    async def start(self) -> None:
        if self.running:
            logger.warning("Expiry sweeper is already running")
            return
        self.running = True
        self.sweep_task = asyncio.create_task(self.sweep_loop())
        logger.info("🚀 Expiry sweeper started")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None
        logger.info("⏹️ Expiry sweeper stopped")
