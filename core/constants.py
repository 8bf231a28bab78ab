"""Application-wide constants and configuration values."""

from __future__ import annotations

from enum import Enum


# Telegram limits
class TelegramLimits:
    """Telegram API limits."""
    MESSAGE_MAX_LENGTH = 4096
    CAPTION_MAX_LENGTH = 1024
    PHOTO_MAX_SIZE = 10 * 1024 * 1024  # 10MB


# Purchase message format
class PurchaseMessageFormat:
    """Lines a purchase declaration must carry."""
    DECLARATION = "I want to buy these stickers!"
    TOTAL_ITEMS_LABEL = "Total items:"
    TOTAL_AMOUNT_LABEL = "Total amount:"
    MIN_LENGTH = 10
    UNIT_PRICE = 1000
    LOW_AMOUNT_THRESHOLD = 1000


# Session timing and receipt limits
class SessionDefaults:
    """Purchase session configuration."""
    TIMEOUT_MINUTES = 60
    SWEEP_INTERVAL_SECONDS = 60
    MAX_ATTEMPTS = 3


class ReceiptLimits:
    """Receipt upload validation constants."""
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
    ALLOWED_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
    EXTENSIONS = {
        "image/jpeg": ".jpg",
        "image/jpg": ".jpg",
        "image/png": ".png",
        "image/webp": ".webp",
    }


# Ledger timeouts
class LedgerDefaults:
    """External ledger HTTP configuration."""
    VALIDATE_TIMEOUT = 10  # seconds
    REGISTER_TIMEOUT = 30  # seconds
    NONCE_BYTES = 16
    USER_NOT_FOUND_MARKERS = ("user not found", "usuario no encontrado")


# Raffle catalog
class RaffleDefaults:
    """Fallback raffle when the catalog is empty or unreadable."""
    ID = 1
    NAME = "Sticker Rueda y Gana"
    KEYWORD = "rueda y gana"
    ICON = "🏍️"
    CACHE_TTL = 300  # seconds


# Rate limiting
class RateLimitDefaults:
    """Rate limiting configuration."""
    MAX_MESSAGES = 5  # per window
    MAX_CALLBACKS = 3  # per window
    WINDOW_SECONDS = 2.0


# Cancellation reasons
class CancelReason:
    """Reasons written to canceled records."""
    ATTEMPTS_EXCEEDED = "attempt limit exceeded"
    EXPIRED = "expired"
    INVALID_RECEIPT = "invalid payment receipt"
    USER_BLOCKED = "user blocked"


# Status enums
class PurchaseStatus(str, Enum):
    """Purchase record status. Also the storage partition name."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not PurchaseStatus.PENDING


class PushEvent(str, Enum):
    """Dashboard push events."""
    NEW_PURCHASE = "new_purchase"
    PURCHASE_UPDATED = "purchase_updated"
    RECEIPT_RECEIVED = "receipt_received"
    PURCHASE_APPROVED = "purchase_approved"
    PURCHASE_REJECTED = "purchase_rejected"
    INTERVENTION_REQUIRED = "intervention_required"
    USER_BLOCKED = "user_blocked"
