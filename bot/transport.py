"""Chat transport backed by the Telegram bot."""

from __future__ import annotations

from aiogram.types import BufferedInputFile

from bot.optimized_bot import OptimizedBot
from core.constants import TelegramLimits
from services.transport import ChatTransport


class TelegramTransport(ChatTransport):
    """Sends through the bot's throttler; user keys are Telegram chat ids."""

    def __init__(self, bot: OptimizedBot) -> None:
        self.bot = bot

    async def send_text(self, user: str, text: str) -> None:
        async with self.bot.throttler:
            await self.bot.bot.send_message(
                chat_id=int(user),
                text=text[: TelegramLimits.MESSAGE_MAX_LENGTH],
            )

    async def send_image(self, user: str, content: bytes, caption: str) -> None:
        if len(caption) > TelegramLimits.CAPTION_MAX_LENGTH:
            raise ValueError("Caption exceeds the Telegram caption limit")
        async with self.bot.throttler:
            await self.bot.bot.send_photo(
                chat_id=int(user),
                photo=BufferedInputFile(content, filename="payment.jpg"),
                caption=caption,
            )

    def is_connected(self) -> bool:
        return self.bot.connected
