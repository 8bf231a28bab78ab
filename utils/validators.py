"""Input validation helpers."""

import re

from core.constants import PurchaseMessageFormat


SENDER_ID_RE = re.compile(r"^[0-9]{5,20}$")


def normalize_sender_id(value) -> str:
    """Reduce a raw sender identifier to its digits (``"-100 123"`` -> ``"100123"``)."""
    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))


def validate_sender_id(value: str) -> bool:
    return bool(value and SENDER_ID_RE.match(value))


def validate_rejection_reason(value) -> str:
    """Return a trimmed reason, empty when nothing usable was given."""
    if not value:
        return ""
    return str(value).strip()


def looks_like_text(value) -> bool:
    """Whether the value is long enough to be worth classifying."""
    return bool(value) and len(value) >= PurchaseMessageFormat.MIN_LENGTH
