"""Persisted set of users refused by the purchase funnel."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from core import get_logger
from core.exceptions import RepositoryError
from database.models import isoformat, utcnow

logger = get_logger(__name__)


class Blocklist:
    """JSON-file backed blocklist, loaded once and written through on change."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._entries: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        return data if isinstance(data, dict) else {}

    def _write(self, entries: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as handle:
            json.dump(entries, handle, ensure_ascii=False, indent=2)
        os.replace(temp_path, self.path)

    async def _ensure_loaded(self) -> Dict[str, Dict[str, Any]]:
        if self._entries is None:
            try:
                self._entries = await asyncio.to_thread(self._read)
            except (OSError, json.JSONDecodeError) as e:
                raise RepositoryError(f"Failed to load blocklist {self.path}: {e}") from e
        return self._entries

    async def is_blocked(self, user: str) -> bool:
        entries = await self._ensure_loaded()
        return user in entries

    async def get(self, user: str) -> Optional[Dict[str, Any]]:
        entries = await self._ensure_loaded()
        return entries.get(user)

    async def add(self, user: str, reason: str) -> Dict[str, Any]:
        async with self._lock:
            entries = dict(await self._ensure_loaded())
            entry = {"reason": reason, "blocked_at": isoformat(utcnow())}
            entries[user] = entry
            await self._persist(entries)
        logger.info("🚫 User blocked", extra={"user": user, "reason": reason})
        return entry

    async def remove(self, user: str) -> bool:
        async with self._lock:
            entries = dict(await self._ensure_loaded())
            if entries.pop(user, None) is None:
                return False
            await self._persist(entries)
        logger.info("User unblocked", extra={"user": user})
        return True

    async def all(self) -> Dict[str, Dict[str, Any]]:
        return dict(await self._ensure_loaded())

    async def _persist(self, entries: Dict[str, Dict[str, Any]]) -> None:
        try:
            await asyncio.to_thread(self._write, entries)
        except OSError as e:
            raise RepositoryError(f"Failed to save blocklist {self.path}: {e}") from e
        self._entries = entries
