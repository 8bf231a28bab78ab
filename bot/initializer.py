"""Bot initialization module."""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.logger import get_logger

if TYPE_CHECKING:
    from config import Config
    from services.purchase_session import PurchaseSessionController

logger = get_logger(__name__)


class BotInitializer:
    """Creates the bot and wires handlers and middleware.

    The transport is created before the controller, the handlers after,
    so construction is split into ``create`` and ``register``.
    """

    def __init__(self, config: Config):
        self.config = config

    def create(self):
        from bot import OptimizedBot, TelegramTransport

        bot = OptimizedBot(token=self.config.bot_token, rate_limit=self.config.bot_rate_limit)
        return bot, TelegramTransport(bot)

    def register(self, bot, controller: PurchaseSessionController) -> None:
        from bot.handlers import setup_purchase_handlers
        from bot.middleware import setup_rate_limit_middleware

        setup_purchase_handlers(bot.dispatcher, controller, bot.bot)
        logger.info("✅ Purchase handlers registered")

        setup_rate_limit_middleware(bot.dispatcher)
        logger.info("✅ Middleware configured")
