"""Purchase message classification and field extraction.

A purchase declaration is the message the web shop generates for the
buyer to paste into the chat::

    I want to buy these stickers!
    Sticker Rueda y Gana: 10 items - $10,000
    Total items: 10
    Total amount: $10,000

Classification is strict (all four lines, each on its own trimmed line,
in any order). Extraction is lenient and never raises.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core import get_logger
from core.constants import PurchaseMessageFormat
from database.models import PurchaseItem
from utils.validators import looks_like_text

logger = get_logger(__name__)

AMOUNT = r"\d+(?:[.,]\d{3})*"

PROMOTION_LINE_RE = re.compile(
    rf"^(?P<promotion>.+?)\s*:\s*(?P<count>\d+)\s*items?\s*-\s*\$\s*(?P<amount>{AMOUNT})$",
    re.IGNORECASE,
)
TOTAL_ITEMS_LINE_RE = re.compile(r"^Total items:\s*(\d+)$")
TOTAL_AMOUNT_LINE_RE = re.compile(rf"^Total amount:\s*\$\s*({AMOUNT})$")

TOTAL_ITEMS_RE = re.compile(r"Total items:\s*(\d+)", re.IGNORECASE)
ITEM_COUNT_RE = re.compile(r"(\d+)\s*items?\b", re.IGNORECASE)
DOLLAR_RE = re.compile(r"\$\s*([\d.,]+)")
ITEM_LINE_RE = re.compile(r"(\d+)\s*items?\s*-\s*\$\s*([\d.,]+)", re.IGNORECASE)


@dataclass(slots=True)
class ExtractedPurchase:
    item_count: int = 0
    total_amount: int = 0
    items: List[PurchaseItem] = field(default_factory=list)
    amount_estimated: bool = False
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and self.item_count > 0 and self.total_amount > 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "itemCount": self.item_count,
            "totalAmount": self.total_amount,
            "items": [
                {"description": i.description, "quantity": i.quantity, "amount": i.amount}
                for i in self.items
            ],
        }


def _digits(value: str) -> int:
    cleaned = re.sub(r"\D", "", value)
    return int(cleaned) if cleaned else 0


class PurchaseDetector:
    """Pure text classification; holds only pricing parameters."""

    def __init__(
        self,
        declaration: str = PurchaseMessageFormat.DECLARATION,
        unit_price: int = PurchaseMessageFormat.UNIT_PRICE,
        low_amount_threshold: int = PurchaseMessageFormat.LOW_AMOUNT_THRESHOLD,
    ) -> None:
        self.declaration = declaration
        self.unit_price = unit_price
        self.low_amount_threshold = low_amount_threshold

    def classify(self, text: Optional[str]) -> bool:
        """Whether ``text`` is a complete purchase declaration."""
        if not looks_like_text(text):
            return False

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        has_declaration = any(line == self.declaration for line in lines)
        has_promotion = any(PROMOTION_LINE_RE.match(line) for line in lines)
        has_total_items = any(TOTAL_ITEMS_LINE_RE.match(line) for line in lines)
        has_total_amount = any(TOTAL_AMOUNT_LINE_RE.match(line) for line in lines)

        return has_declaration and has_promotion and has_total_items and has_total_amount

    def extract(self, text: Optional[str]) -> ExtractedPurchase:
        """Pull quantity, amount and line items out of ``text``.

        The largest dollar figure is taken as the total. When that figure
        is missing or below the low-amount threshold while a quantity was
        found, the total is recomputed as ``quantity * unit_price``. This
        is an approximation kept for messages that quote per-item prices
        only.
        """
        try:
            result = ExtractedPurchase()
            text = text or ""

            count_match = TOTAL_ITEMS_RE.search(text) or ITEM_COUNT_RE.search(text)
            if count_match:
                result.item_count = int(count_match.group(1))

            amounts = [_digits(value) for value in DOLLAR_RE.findall(text)]
            if amounts:
                result.total_amount = max(amounts)

            if result.item_count > 0 and result.total_amount < self.low_amount_threshold:
                result.total_amount = result.item_count * self.unit_price
                result.amount_estimated = True

            for line in text.splitlines():
                item_match = ITEM_LINE_RE.search(line)
                if item_match:
                    result.items.append(PurchaseItem(
                        description=line.strip(),
                        quantity=int(item_match.group(1)),
                        amount=_digits(item_match.group(2)),
                    ))

            return result
        except Exception as e:
            logger.error(f"Failed to extract purchase data: {e}", exc_info=True)
            return ExtractedPurchase(error=str(e))
