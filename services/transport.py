"""Chat transport boundary consumed by the purchase funnel."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional


@dataclass(slots=True)
class InboundImage:
    """Image attachment; bytes are fetched lazily through ``loader``."""

    mime_type: str
    size: Optional[int]
    content: Optional[bytes] = None
    loader: Optional[Callable[[], Awaitable[bytes]]] = None

    async def read(self) -> bytes:
        if self.content is None:
            if self.loader is None:
                return b""
            self.content = await self.loader()
        return self.content


@dataclass(slots=True)
class InboundMessage:
    sender_id: str
    display_name: str = ""
    text: Optional[str] = None
    image: Optional[InboundImage] = None


class ChatTransport(ABC):
    """Outbound side of the chat connection.

    Implementations raise on delivery failure; the funnel logs and moves on.
    """

    @abstractmethod
    async def send_text(self, user: str, text: str) -> None:
        ...

    @abstractmethod
    async def send_image(self, user: str, content: bytes, caption: str) -> None:
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...


class OfflineTransport(ChatTransport):
    """Used in admin-only mode; every send is refused."""

    async def send_text(self, user: str, text: str) -> None:
        raise ConnectionError("Chat transport is not configured")

    async def send_image(self, user: str, content: bytes, caption: str) -> None:
        raise ConnectionError("Chat transport is not configured")

    def is_connected(self) -> bool:
        return False
