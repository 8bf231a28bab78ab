"""Tests for the inbound rate-limit middleware."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from aiogram.types import Chat, Message, User

from bot.middleware.rate_limit import RateLimitMiddleware


def tg_message(user_id: int = 987654321, text: str = "hi") -> Message:
    return Message(
        message_id=1,
        date=datetime.now(),
        chat=Chat(id=user_id, type="private"),
        from_user=User(id=user_id, is_bot=False, first_name="Ana"),
        text=text,
    )


@pytest.mark.asyncio
async def test_burst_beyond_limit_is_dropped():
    limiter = RateLimitMiddleware(max_messages=2, window_seconds=60)
    handler = AsyncMock(return_value="handled")

    results = [await limiter(handler, tg_message(), {}) for _ in range(4)]

    assert results == ["handled", "handled", None, None]
    assert handler.await_count == 2


@pytest.mark.asyncio
async def test_users_are_limited_independently():
    limiter = RateLimitMiddleware(max_messages=1, window_seconds=60)
    handler = AsyncMock(return_value="handled")

    assert await limiter(handler, tg_message(user_id=111111111), {}) == "handled"
    assert await limiter(handler, tg_message(user_id=222222222), {}) == "handled"
    assert await limiter(handler, tg_message(user_id=111111111), {}) is None


@pytest.mark.asyncio
async def test_window_expiry_lets_messages_through():
    limiter = RateLimitMiddleware(max_messages=1, window_seconds=5)
    handler = AsyncMock(return_value="handled")

    assert await limiter(handler, tg_message(), {}) == "handled"
    assert await limiter(handler, tg_message(), {}) is None

    # Age the recorded message past the window
    limiter._events[987654321][0] -= 6
    assert await limiter(handler, tg_message(), {}) == "handled"


@pytest.mark.asyncio
async def test_non_message_events_pass_through():
    limiter = RateLimitMiddleware(max_messages=1, window_seconds=60)
    handler = AsyncMock(return_value="handled")

    assert await limiter(handler, object(), {}) == "handled"
    assert await limiter(handler, object(), {}) == "handled"
