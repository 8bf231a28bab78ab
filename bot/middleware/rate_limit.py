"""Per-user rate limiting middleware against message bursts."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Deque, Dict

from aiogram import BaseMiddleware
from aiogram.types import Message, TelegramObject

from core import get_logger
from core.constants import RateLimitDefaults

logger = get_logger(__name__)


class RateLimitMiddleware(BaseMiddleware):
    """Drops messages beyond ``max_messages`` per ``window_seconds`` for one user.

    The first dropped message of a burst gets a short notice; the rest
    are dropped silently so a flood does not turn into a reply flood.
    """

    def __init__(
        self,
        max_messages: int = RateLimitDefaults.MAX_MESSAGES,
        window_seconds: float = RateLimitDefaults.WINDOW_SECONDS,
    ) -> None:
        super().__init__()
        self.max_messages = max_messages
        self.window = window_seconds
        self._events: Dict[int, Deque[float]] = defaultdict(lambda: deque(maxlen=max_messages))
        self._violations: Dict[int, int] = defaultdict(int)

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        if not isinstance(event, Message) or event.from_user is None:
            return await handler(event, data)

        user_id = event.from_user.id
        now = time.monotonic()
        bucket = self._events[user_id]

        # Evict old timestamps
        while bucket and now - bucket[0] > self.window:
            bucket.popleft()

        if len(bucket) >= self.max_messages:
            self._violations[user_id] += 1
            if self._violations[user_id] == 1:
                logger.warning("Rate limit hit, dropping messages", extra={"user": str(user_id)})
                try:
                    await event.answer("⏱️ Too many messages. Please wait a few seconds.")
                except Exception as e:
                    logger.debug(f"Rate limit notice not sent: {e}")
            return None

        self._violations.pop(user_id, None)
        bucket.append(now)
        return await handler(event, data)


def setup_rate_limit_middleware(
    dispatcher,
    *,
    max_messages: int = RateLimitDefaults.MAX_MESSAGES,
    window_seconds: float = RateLimitDefaults.WINDOW_SECONDS,
) -> RateLimitMiddleware:
    limiter = RateLimitMiddleware(max_messages=max_messages, window_seconds=window_seconds)
    dispatcher.message.middleware(limiter)
    return limiter
