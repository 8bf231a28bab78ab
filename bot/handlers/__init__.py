"""Aggregate bot handlers for dispatch registration."""

from .purchases import PurchaseHandler, setup_purchase_handlers

__all__ = [
    "PurchaseHandler",
    "setup_purchase_handlers",
]
