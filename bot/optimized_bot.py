"""Telegram bot wrapper around aiogram."""

from __future__ import annotations

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from asyncio_throttle import Throttler

from core import get_logger

logger = get_logger(__name__)


class OptimizedBot:
    """Owns the aiogram ``Bot``/``Dispatcher`` pair and the outbound throttle."""

    def __init__(self, token: str, rate_limit: int) -> None:
        self.bot = Bot(token=token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
        self.storage = MemoryStorage()
        self.dispatcher = Dispatcher(storage=self.storage)
        self.rate_limit = rate_limit
        self.throttler = Throttler(rate_limit=rate_limit, period=1.0)
        self.connected = False
        self.dispatcher.startup.register(self._on_startup)
        self.dispatcher.shutdown.register(self._on_shutdown)

    async def _on_startup(self) -> None:
        self.connected = True
        logger.info("🤖 Bot polling started")

    async def _on_shutdown(self) -> None:
        self.connected = False
        logger.info("Bot polling stopped")

    async def start(self) -> None:
        await self.dispatcher.start_polling(self.bot, handle_signals=False)

    async def stop(self) -> None:
        self.connected = False
        try:
            await self.dispatcher.stop_polling()
        except RuntimeError:
            # Polling was never started
            pass
        await self.dispatcher.storage.close()
        await self.bot.session.close()
