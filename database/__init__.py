"""Database package public API."""

from .blocklist import Blocklist
from .models import PurchaseItem, PurchaseRecord, new_record_id
from .record_store import FileRecordStore, RecordStore, get_record_store, init_record_store

__all__ = [
    "Blocklist",
    "PurchaseItem",
    "PurchaseRecord",
    "new_record_id",
    "FileRecordStore",
    "RecordStore",
    "get_record_store",
    "init_record_store",
]
