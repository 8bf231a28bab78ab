"""Centralized error handling for bot handlers."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from aiogram import types

from core import get_logger
from services import messages

logger = get_logger(__name__)


def handle_bot_errors(log_context: bool = True):
    """Decorator for handler methods: log the failure and answer with a generic error.

    Usage:
        @handle_bot_errors()
        async def on_text(self, message):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, message: Any, *args, **kwargs):
            try:
                return await func(self, message, *args, **kwargs)
            except Exception as e:
                log_extra = {}
                if log_context and isinstance(message, types.Message):
                    user = message.from_user.id if message.from_user else message.chat.id
                    log_extra = {"user": str(user), "event": func.__name__}

                logger.error(f"Error in {func.__name__}: {e}", exc_info=True, extra=log_extra)

                if isinstance(message, types.Message):
                    try:
                        await message.answer(messages.generic_error())
                    except Exception as send_error:
                        logger.error(f"Failed to send error message: {send_error}")

        return wrapper
    return decorator
