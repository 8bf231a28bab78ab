"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from pathlib import Path
from typing import Optional

from aiohttp import web as aiohttp_web
from aiohttp_wsgi import WSGIHandler

from config import Config, load_config
from core.logger import get_logger

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.record_store = None
        self.registry = None
        self.bot = None
        self.transport = None
        self.ledger = None
        self.controller = None
        self.admin_service = None
        self.sweeper = None
        self.flask_app = None
        self.web_runner = None

    async def initialize(self) -> None:
        """Initialize all application components."""
        await self._init_storage()

        if self._should_enable_bot():
            self._init_bot()
        else:
            logger.info("Running in admin-only mode (web interface only)")

        self._init_web_app()
        self._init_services()

        if self.bot:
            from bot.initializer import BotInitializer
            BotInitializer(self.config).register(self.bot, self.controller)

        await self._start_web_server()

    async def run(self) -> None:
        """Run the application."""
        restored = await self.controller.restore_sessions()
        logger.info(f"✅ {restored} open purchase sessions restored")

        await self.sweeper.start()
        logger.info("⏰ Expiry sweeper started")

        bot_task = None
        if self.bot:
            bot_task = asyncio.create_task(self.bot.start())
            logger.info("🤖 Telegram bot started")

        try:
            if bot_task:
                await bot_task
            else:
                logger.info("⚡ Admin-only mode: web interface running...")
                while True:
                    await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Shutting down...")
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        with suppress(Exception):
            if self.sweeper:
                await self.sweeper.stop()
        with suppress(Exception):
            if self.bot:
                await self.bot.stop()
        with suppress(Exception):
            if self.ledger:
                await self.ledger.close()
        with suppress(Exception):
            if self.web_runner:
                await self.web_runner.cleanup()

    async def _init_storage(self) -> None:
        """Open the record store and clean up interrupted writes."""
        from database import init_record_store

        self.record_store = init_record_store(self.config.data_folder)
        repaired = await self.record_store.repair()
        if repaired:
            logger.warning(f"🧹 Record store repaired: {repaired} leftover files removed")
        Path(self.config.log_folder).mkdir(parents=True, exist_ok=True)
        logger.info(f"✅ Record store ready at {self.config.data_folder}")

    def _should_enable_bot(self) -> bool:
        """Check if bot should be enabled."""
        return (
            self.config.enable_bot
            and self.config.bot_token
            and self.config.bot_token != "your_bot_token_here"
        )

    def _init_bot(self) -> None:
        """Create the Telegram bot and its transport."""
        try:
            from bot.initializer import BotInitializer
            self.bot, self.transport = BotInitializer(self.config).create()
            logger.info("✅ Bot initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize bot: {e}", exc_info=True)
            logger.info("Continuing with web interface only...")
            self.bot = None
            self.transport = None

    def _init_web_app(self) -> None:
        from web import create_app

        self.flask_app = create_app(self.config)

    def _init_services(self) -> None:
        from database import Blocklist
        from services import (
            ExpirySweeper,
            LedgerClient,
            OfflineTransport,
            PurchaseAdminService,
            PurchaseDetector,
            PurchaseSessionController,
            RaffleCatalog,
            ReceiptStorage,
            SessionRegistry,
            SessionSettings,
            SocketIOPushChannel,
        )

        config = self.config
        transport = self.transport or OfflineTransport()
        push = SocketIOPushChannel(self.flask_app.extensions["websocket_manager"])
        blocklist = Blocklist(config.blocklist_path)
        receipts = ReceiptStorage(config.receipts_folder)
        self.registry = SessionRegistry()
        self.ledger = LedgerClient(
            config.ledger_base_url,
            api_key=config.ledger_api_key,
            validate_timeout=config.ledger_validate_timeout,
            register_timeout=config.ledger_register_timeout,
            forbidden_soft_pass=config.ledger_forbidden_soft_pass,
        )

        self.controller = PurchaseSessionController(
            store=self.record_store,
            registry=self.registry,
            transport=transport,
            ledger=self.ledger,
            receipts=receipts,
            catalog=RaffleCatalog(config.raffles_path, ttl=config.raffle_cache_ttl),
            blocklist=blocklist,
            push=push,
            detector=PurchaseDetector(unit_price=config.unit_price),
            settings=SessionSettings.from_config(config),
        )
        self.admin_service = PurchaseAdminService(
            store=self.record_store,
            registry=self.registry,
            transport=transport,
            ledger=self.ledger,
            blocklist=blocklist,
            push=push,
            support_phone=config.support_phone,
        )
        self.sweeper = ExpirySweeper(self.controller, interval_seconds=config.sweep_interval_seconds)

        self.flask_app.config["ADMIN_SERVICE"] = self.admin_service
        self.flask_app.config["RECEIPT_STORAGE"] = receipts
        logger.info("✅ Services initialized")

    async def _start_web_server(self) -> None:
        # Create WSGI handler for Flask app
        wsgi_handler = WSGIHandler(self.flask_app)

        aio_app = aiohttp_web.Application()
        aio_app.router.add_route("*", "/{path_info:.*}", wsgi_handler)

        self.web_runner = aiohttp_web.AppRunner(aio_app)
        await self.web_runner.setup()

        # Bind to PORT env var if present (Render/Heroku)
        effective_port = int(os.getenv("PORT", str(self.config.web_port)))
        effective_host = "0.0.0.0" if os.getenv("PORT") else self.config.web_host

        site = aiohttp_web.TCPSite(self.web_runner, effective_host, effective_port)
        await site.start()

        logger.info(f"🚀 Web server started on http://{effective_host}:{effective_port}")
        logger.info(f"🔗 Admin API: http://{effective_host}:{effective_port}/admin/api")
