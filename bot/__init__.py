"""Telegram side of the purchase funnel."""

from .optimized_bot import OptimizedBot
from .transport import TelegramTransport

__all__ = ["OptimizedBot", "TelegramTransport"]
