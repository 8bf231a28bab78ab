"""Prometheus counters for the purchase funnel."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SESSIONS_OPENED = Counter(
    "purchase_sessions_opened_total",
    "Purchase sessions opened",
)
RECEIPTS = Counter(
    "purchase_receipts_total",
    "Receipt submissions by outcome",
    ["outcome"],
)
CANCELLATIONS = Counter(
    "purchase_cancellations_total",
    "Purchases moved to canceled by reason",
    ["reason"],
)
ADMIN_DECISIONS = Counter(
    "purchase_admin_decisions_total",
    "Admin decisions on pending purchases",
    ["decision"],
)
ACTIVE_SESSIONS = Gauge(
    "purchase_active_sessions",
    "Sessions in the registry after the last sweep",
)
