"""Routes every private message into the purchase funnel."""

from __future__ import annotations

from aiogram import Bot, F, Router, types

from bot.error_handler import handle_bot_errors
from bot.identity import display_name_of, resolve_sender_id
from core import get_logger
from services.purchase_session import PurchaseSessionController
from services.transport import InboundImage, InboundMessage

logger = get_logger(__name__)


def _loader(bot: Bot, file_id: str):
    async def load() -> bytes:
        file = await bot.get_file(file_id)
        buffer = await bot.download_file(file.file_path)
        return buffer.read()
    return load


class PurchaseHandler:
    def __init__(self, controller: PurchaseSessionController, bot: Bot) -> None:
        self.router = Router()
        self.controller = controller
        self.bot = bot
        self._register_handlers()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def _register_handlers(self) -> None:
        private = F.chat.type == "private"
        self.router.message.register(self.on_photo, private, F.photo)
        self.router.message.register(
            self.on_image_document,
            private,
            F.document,
            F.document.mime_type.startswith("image/"),
        )
        self.router.message.register(self.on_text, private, F.text)
        self.router.message.register(self.on_other, private)

    async def _dispatch(self, inbound: InboundMessage) -> None:
        outcome = await self.controller.handle_message(inbound)
        logger.debug(
            f"Message handled: {outcome.value}",
            extra={"user": inbound.sender_id, "event": outcome.value},
        )

    def _inbound(self, message: types.Message, **fields) -> InboundMessage | None:
        sender_id = resolve_sender_id(message)
        if sender_id is None:
            logger.debug(f"Ignoring message without a usable sender (chat {message.chat.id})")
            return None
        return InboundMessage(sender_id=sender_id, display_name=display_name_of(message), **fields)

    @handle_bot_errors()
    async def on_photo(self, message: types.Message) -> None:
        photo = message.photo[-1]
        # Telegram re-encodes photos as JPEG
        image = InboundImage(
            mime_type="image/jpeg",
            size=photo.file_size,
            loader=_loader(self.bot, photo.file_id),
        )
        inbound = self._inbound(message, image=image)
        if inbound is not None:
            await self._dispatch(inbound)

    @handle_bot_errors()
    async def on_image_document(self, message: types.Message) -> None:
        document = message.document
        image = InboundImage(
            mime_type=document.mime_type or "",
            size=document.file_size,
            loader=_loader(self.bot, document.file_id),
        )
        inbound = self._inbound(message, image=image)
        if inbound is not None:
            await self._dispatch(inbound)

    @handle_bot_errors()
    async def on_text(self, message: types.Message) -> None:
        inbound = self._inbound(message, text=message.text)
        if inbound is not None:
            await self._dispatch(inbound)

    @handle_bot_errors()
    async def on_other(self, message: types.Message) -> None:
        # Stickers, voice notes, non-image files: treated as chatter
        inbound = self._inbound(message, text=message.caption or "")
        if inbound is not None:
            await self._dispatch(inbound)


def setup_purchase_handlers(dispatcher, controller: PurchaseSessionController, bot: Bot) -> PurchaseHandler:
    handler = PurchaseHandler(controller, bot)
    handler.setup(dispatcher)
    return handler
