"""Application configuration module.

Reads settings from environment variables with sane defaults for the
purchase funnel: record partitions, receipt limits, session timing and
the external ledger endpoints.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


def _parse_str_tuple(value: str) -> tuple[str, ...]:
    """Parse comma-separated strings."""
    if not value:
        return ()
    return tuple(item.strip().lower() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Config:
    bot_token: str
    admin_username: str
    admin_password: str
    environment: str
    debug: bool
    enable_bot: bool
    web_host: str
    web_port: int
    secret_key: str
    data_folder: str
    receipts_folder: str
    blocklist_path: str
    raffles_path: str
    log_folder: str
    purchase_timeout_minutes: int
    sweep_interval_seconds: int
    max_receipt_attempts: int
    max_file_size: int
    allowed_mime_types: tuple[str, ...]
    unit_price: int
    ledger_base_url: str
    ledger_api_key: str
    ledger_validate_timeout: int
    ledger_register_timeout: int
    ledger_forbidden_soft_pass: bool
    payment_key: str
    payment_image_path: str
    support_phone: str
    bot_rate_limit: int
    raffle_cache_ttl: int


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values
    """
    config = Config(
        bot_token=_get_str("BOT_TOKEN", "your_bot_token_here"),
        admin_username=_get_str("ADMIN_USERNAME", "admin"),
        admin_password=_get_str("ADMIN_PASSWORD", "123456"),
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        enable_bot=_get_bool("ENABLE_BOT", True),
        web_host=_get_str("WEB_HOST", "0.0.0.0"),
        web_port=_get_int("WEB_PORT", 5000),
        secret_key=_get_str(
            "SECRET_KEY",
            "production_secret_key_must_be_changed_in_production_environment"
        ),
        data_folder=_get_str("DATA_FOLDER", "data/purchases"),
        receipts_folder=_get_str("RECEIPTS_FOLDER", "uploads/receipts"),
        blocklist_path=_get_str("BLOCKLIST_PATH", "data/blocked_users.json"),
        raffles_path=_get_str("RAFFLES_PATH", "data/raffles.json"),
        log_folder=_get_str("LOG_FOLDER", "logs"),
        purchase_timeout_minutes=_get_int("PURCHASE_TIMEOUT_MINUTES", 60),
        sweep_interval_seconds=_get_int("SWEEP_INTERVAL_SECONDS", 60),
        max_receipt_attempts=_get_int("MAX_RECEIPT_ATTEMPTS", 3),
        max_file_size=_get_int("MAX_FILE_SIZE", 10 * 1024 * 1024),
        allowed_mime_types=_parse_str_tuple(
            _get_str("ALLOWED_MIME_TYPES", "image/jpeg,image/jpg,image/png,image/webp")
        ),
        unit_price=_get_int("UNIT_PRICE", 1000),
        ledger_base_url=_get_str("LEDGER_BASE_URL", "http://localhost:8080/api"),
        ledger_api_key=_get_str("LEDGER_API_KEY", ""),
        ledger_validate_timeout=_get_int("LEDGER_VALIDATE_TIMEOUT", 10),
        ledger_register_timeout=_get_int("LEDGER_REGISTER_TIMEOUT", 30),
        ledger_forbidden_soft_pass=_get_bool("LEDGER_FORBIDDEN_SOFT_PASS", True),
        payment_key=_get_str("PAYMENT_KEY", "@DAVISTIKRUEDGANA"),
        payment_image_path=_get_str("PAYMENT_IMAGE_PATH", "static/payment_key.jpg"),
        support_phone=_get_str("SUPPORT_PHONE", "+57 3103134816"),
        bot_rate_limit=_get_int("BOT_RATE_LIMIT", 30),
        raffle_cache_ttl=_get_int("RAFFLE_CACHE_TTL", 300),
    )

    return config
