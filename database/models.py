"""Persisted purchase records."""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.constants import PurchaseStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is present."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_record_id() -> str:
    """Opaque, time-ordered record identifier."""
    return f"purchase_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(slots=True)
class PurchaseItem:
    description: str
    quantity: int
    amount: int


@dataclass(slots=True)
class PurchaseRecord:
    id: str
    user: str
    display_name: str
    raffle_id: int
    raffle_name: str
    item_count: int
    total_amount: int
    created_at: str
    status: str = PurchaseStatus.PENDING.value
    items: List[Dict[str, Any]] = field(default_factory=list)
    receipt_ref: Optional[str] = None
    receipt_received_at: Optional[str] = None
    approved_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    canceled_at: Optional[str] = None
    assigned_numbers: List[str] = field(default_factory=list)
    external_purchase_id: Optional[str] = None
    total_numbers: Optional[int] = None
    intervention_required: bool = False
    intervention_error: Optional[str] = None
    failed_attempts: int = 0
    version: int = 0
    updated_at: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.item_count > 0 and self.total_amount > 0

    @property
    def partition(self) -> PurchaseStatus:
        return PurchaseStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PurchaseRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def with_patch(self, patch: Dict[str, Any]) -> "PurchaseRecord":
        """Copy of the record with ``patch`` applied; unknown keys are rejected."""
        data = self.to_dict()
        unknown = set(patch) - set(data)
        if unknown:
            raise KeyError(f"Unknown record fields: {sorted(unknown)}")
        data.update(patch)
        return PurchaseRecord.from_dict(data)
