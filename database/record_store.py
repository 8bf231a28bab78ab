"""Durable purchase record store partitioned by status.

Records live in three directories (``pending``, ``completed``,
``canceled``), one JSON document per record named after its id. A
record's ``status`` field always names the directory that holds it.

Writes are serialized per record with an asyncio lock and guarded by a
``version`` counter, so two writers racing on the same record cannot
silently overwrite each other. Partition moves write the destination
file before removing the source, which means a crash leaves at most a
duplicate (resolved by :meth:`FileRecordStore.repair`) and never zero
copies.

Pending lookups by user go through an in-memory index of pending record
ids per user, built from one scan on first use and kept current by
``create``, ``move_partition`` and ``repair``. The store assumes it is
the only writer of its directory.
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Set

from core import get_logger
from core.constants import PurchaseStatus
from core.exceptions import (
    InvalidTransitionError,
    RecordConflictError,
    RecordNotFoundError,
    RecordNotPendingError,
    RepositoryError,
)
from database.models import PurchaseRecord, isoformat, utcnow
from utils.locks import KeyedLocks

logger = get_logger(__name__)

ALLOWED_MOVES = {
    (PurchaseStatus.PENDING, PurchaseStatus.COMPLETED),
    (PurchaseStatus.PENDING, PurchaseStatus.CANCELED),
}
TERMINAL_PARTITIONS = (PurchaseStatus.COMPLETED, PurchaseStatus.CANCELED)
TEMP_SUFFIX = ".tmp"


class RecordStore(ABC):
    """Repository contract the session controller and admin service depend on."""

    @abstractmethod
    async def find_pending(self, user: str) -> Optional[PurchaseRecord]:
        """Newest pending record for ``user``."""

    @abstractmethod
    async def list_pending_for_user(self, user: str) -> List[PurchaseRecord]:
        ...

    @abstractmethod
    async def find_by_id(self, record_id: str) -> Optional[PurchaseRecord]:
        """Look a record up across every partition."""

    @abstractmethod
    async def create(self, record: PurchaseRecord) -> PurchaseRecord:
        ...

    @abstractmethod
    async def update_pending(
        self,
        record_id: str,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> PurchaseRecord:
        """Patch a record in place while it is still pending."""

    @abstractmethod
    async def move_partition(
        self,
        record_id: str,
        from_status: PurchaseStatus,
        to_status: PurchaseStatus,
        patch: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> PurchaseRecord:
        """Transition a record between partitions."""

    @abstractmethod
    async def list_by_status(self, status: PurchaseStatus) -> List[PurchaseRecord]:
        ...


class FileRecordStore(RecordStore):
    """``RecordStore`` backed by one JSON file per record."""

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self._locks = KeyedLocks()
        self._pending_index: Optional[Dict[str, Set[str]]] = None
        self._index_lock = asyncio.Lock()
        for status in PurchaseStatus:
            self._partition_dir(status).mkdir(parents=True, exist_ok=True)

    def _partition_dir(self, status: PurchaseStatus) -> Path:
        return self.base_dir / status.value

    def _path(self, status: PurchaseStatus, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise RecordNotFoundError(f"Invalid record id: {record_id!r}")
        return self._partition_dir(status) / f"{record_id}.json"

    # ---- low level file helpers (run in worker threads) ----

    @staticmethod
    def _write_atomic(path: Path, data: Dict[str, Any]) -> None:
        temp_path = path.with_name(path.name + TEMP_SUFFIX)
        with open(temp_path, "w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except FileNotFoundError:
            return None

    def _scan(self, status: PurchaseStatus) -> List[PurchaseRecord]:
        records = []
        for path in self._partition_dir(status).glob("*.json"):
            try:
                data = self._read(path)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable record file {path.name}: {e}")
                continue
            if data is None:
                continue
            try:
                record = PurchaseRecord.from_dict(data)
            except TypeError as e:
                logger.warning(f"Skipping malformed record file {path.name}: {e}")
                continue
            if record.status != status.value:
                logger.warning(
                    f"Record {record.id} says {record.status} but sits in {status.value}",
                    extra={"record_id": record.id},
                )
            records.append(record)
        records.sort(key=lambda r: r.created_at)
        return records

    async def _load(self, status: PurchaseStatus, record_id: str) -> Optional[PurchaseRecord]:
        path = self._path(status, record_id)
        try:
            data = await asyncio.to_thread(self._read, path)
        except (OSError, json.JSONDecodeError) as e:
            raise RepositoryError(f"Failed to read record {record_id}: {e}") from e
        return PurchaseRecord.from_dict(data) if data is not None else None

    async def _save(self, record: PurchaseRecord) -> None:
        path = self._path(record.partition, record.id)
        try:
            await asyncio.to_thread(self._write_atomic, path, record.to_dict())
        except OSError as e:
            raise RepositoryError(f"Failed to write record {record.id}: {e}") from e

    async def _terminal_status(self, record_id: str) -> Optional[PurchaseStatus]:
        for status in TERMINAL_PARTITIONS:
            if await self._load(status, record_id) is not None:
                return status
        return None

    # ---- RecordStore contract ----

    async def list_by_status(self, status: PurchaseStatus) -> List[PurchaseRecord]:
        return await asyncio.to_thread(self._scan, PurchaseStatus(status))

    async def _pending_ids(self, user: str) -> List[str]:
        async with self._index_lock:
            if self._pending_index is None:
                index: Dict[str, Set[str]] = defaultdict(set)
                for record in await self.list_by_status(PurchaseStatus.PENDING):
                    index[record.user].add(record.id)
                self._pending_index = index
            return list(self._pending_index.get(user, ()))

    async def _index_add(self, user: str, record_id: str) -> None:
        async with self._index_lock:
            if self._pending_index is not None:
                self._pending_index[user].add(record_id)

    async def _index_discard(self, user: str, record_id: str) -> None:
        async with self._index_lock:
            if self._pending_index is not None:
                self._pending_index.get(user, set()).discard(record_id)

    async def list_pending_for_user(self, user: str) -> List[PurchaseRecord]:
        records = []
        for record_id in await self._pending_ids(user):
            try:
                record = await self._load(PurchaseStatus.PENDING, record_id)
            except RepositoryError as e:
                logger.warning(f"Skipping unreadable pending record: {e}", extra={"record_id": record_id})
                continue
            if record is None or record.user != user:
                await self._index_discard(user, record_id)
                continue
            records.append(record)
        records.sort(key=lambda r: r.created_at)
        return records

    async def find_pending(self, user: str) -> Optional[PurchaseRecord]:
        records = await self.list_pending_for_user(user)
        if not records:
            return None
        if len(records) > 1:
            logger.warning(
                f"User has {len(records)} pending records, using the newest",
                extra={"user": user},
            )
        return records[-1]

    async def find_by_id(self, record_id: str) -> Optional[PurchaseRecord]:
        # Terminal copies win over a pending leftover from an interrupted move
        for status in (*TERMINAL_PARTITIONS, PurchaseStatus.PENDING):
            record = await self._load(status, record_id)
            if record is not None:
                return record
        return None

    async def create(self, record: PurchaseRecord) -> PurchaseRecord:
        if record.status != PurchaseStatus.PENDING.value:
            raise InvalidTransitionError(f"New records must be pending, got {record.status}")
        async with self._locks.hold(record.id):
            if await self.find_by_id(record.id) is not None:
                raise RecordConflictError(f"Record {record.id} already exists")
            now = isoformat(utcnow())
            stored = record.with_patch({"version": 1, "updated_at": now})
            await self._save(stored)
            await self._index_add(stored.user, stored.id)
        logger.info(
            "📝 Purchase record created",
            extra={"record_id": stored.id, "user": stored.user},
        )
        return stored

    async def update_pending(
        self,
        record_id: str,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> PurchaseRecord:
        async with self._locks.hold(record_id):
            current = await self._load(PurchaseStatus.PENDING, record_id)
            if current is None:
                await self._raise_missing(record_id)
            self._check_version(current, expected_version)
            updated = current.with_patch({
                **patch,
                "status": PurchaseStatus.PENDING.value,
                "version": current.version + 1,
                "updated_at": isoformat(utcnow()),
            })
            await self._save(updated)
        return updated

    async def move_partition(
        self,
        record_id: str,
        from_status: PurchaseStatus,
        to_status: PurchaseStatus,
        patch: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> PurchaseRecord:
        from_status = PurchaseStatus(from_status)
        to_status = PurchaseStatus(to_status)
        if (from_status, to_status) not in ALLOWED_MOVES:
            raise InvalidTransitionError(
                f"Cannot move record from {from_status.value} to {to_status.value}"
            )

        async with self._locks.hold(record_id):
            current = await self._load(from_status, record_id)
            if current is None:
                await self._raise_missing(record_id)
            self._check_version(current, expected_version)

            moved = current.with_patch({
                **(patch or {}),
                "status": to_status.value,
                "version": current.version + 1,
                "updated_at": isoformat(utcnow()),
            })
            # Destination first: a failure here leaves the source untouched
            await self._save(moved)
            source = self._path(from_status, record_id)
            try:
                await asyncio.to_thread(source.unlink, missing_ok=True)
            except OSError as e:
                # Terminal copy exists and wins on lookup; repair() clears the leftover
                logger.error(
                    f"Moved record but could not remove source file: {e}",
                    exc_info=True,
                    extra={"record_id": record_id},
                )
            await self._index_discard(moved.user, record_id)

        logger.info(
            f"📦 Record moved {from_status.value} -> {to_status.value}",
            extra={"record_id": record_id, "user": moved.user},
        )
        return moved

    async def _raise_missing(self, record_id: str) -> NoReturn:
        terminal = await self._terminal_status(record_id)
        if terminal is not None:
            raise RecordNotPendingError(record_id, terminal.value)
        raise RecordNotFoundError(f"Record {record_id} not found")

    @staticmethod
    def _check_version(record: PurchaseRecord, expected_version: Optional[int]) -> None:
        if expected_version is not None and record.version != expected_version:
            raise RecordConflictError(
                f"Record {record.id} is at version {record.version}, expected {expected_version}"
            )

    # ---- maintenance ----

    def _repair_sync(self) -> int:
        removed = 0
        for status in PurchaseStatus:
            for temp in self._partition_dir(status).glob(f"*{TEMP_SUFFIX}"):
                temp.unlink(missing_ok=True)
                removed += 1
        for pending in self._partition_dir(PurchaseStatus.PENDING).glob("*.json"):
            for status in TERMINAL_PARTITIONS:
                if (self._partition_dir(status) / pending.name).exists():
                    logger.warning(f"Removing pending leftover of {status.value} record {pending.stem}")
                    pending.unlink(missing_ok=True)
                    removed += 1
                    break
        return removed

    async def repair(self) -> int:
        """Remove leftovers of interrupted writes; returns the number of files removed."""
        removed = await asyncio.to_thread(self._repair_sync)
        async with self._index_lock:
            self._pending_index = None
        if removed:
            logger.info(f"🧹 Record store repair removed {removed} stale files")
        return removed


# Global instance (initialized by the application)
_record_store: Optional[FileRecordStore] = None


def init_record_store(base_dir: Path | str) -> FileRecordStore:
    global _record_store
    _record_store = FileRecordStore(base_dir)
    return _record_store


def get_record_store() -> FileRecordStore:
    if _record_store is None:
        raise RuntimeError("Record store not initialized. Call init_record_store first.")
    return _record_store
