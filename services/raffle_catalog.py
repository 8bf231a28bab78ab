"""Raffle catalog used to tag purchases with the promotion they target."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from cachetools import TTLCache

from core import get_logger
from core.constants import RaffleDefaults

logger = get_logger(__name__)

CACHE_KEY = "raffles"


@dataclass(slots=True, frozen=True)
class Raffle:
    id: int
    name: str
    keyword: str = ""
    status: str = "active"
    icon: str = ""

    @property
    def is_active(self) -> bool:
        return self.status.lower() in {"active", "activo"}


DEFAULT_RAFFLE = Raffle(
    id=RaffleDefaults.ID,
    name=RaffleDefaults.NAME,
    keyword=RaffleDefaults.KEYWORD,
    icon=RaffleDefaults.ICON,
)


class RaffleCatalog:
    """Reads raffles from a JSON file and keeps them for ``ttl`` seconds.

    File format: ``[{"id": 1, "name": "...", "keyword": "...",
    "status": "active", "icon": "..."}]`` or ``{"raffles": [...]}``.
    """

    def __init__(self, path: Path | str, ttl: int = RaffleDefaults.CACHE_TTL) -> None:
        self.path = Path(path)
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=ttl)
        self._lock = asyncio.Lock()

    def _read(self) -> List[Raffle]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
        entries = data.get("raffles", []) if isinstance(data, dict) else data
        raffles = []
        for entry in entries:
            try:
                raffles.append(Raffle(
                    id=int(entry["id"]),
                    name=str(entry["name"]),
                    keyword=str(entry.get("keyword", "")),
                    status=str(entry.get("status", "active")),
                    icon=str(entry.get("icon", "")),
                ))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed raffle entry {entry!r}: {e}")
        return raffles

    async def raffles(self) -> List[Raffle]:
        cached = self._cache.get(CACHE_KEY)
        if cached is not None:
            return cached
        async with self._lock:
            cached = self._cache.get(CACHE_KEY)
            if cached is not None:
                return cached
            try:
                raffles = await asyncio.to_thread(self._read)
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load raffle catalog {self.path}: {e}", exc_info=True)
                raffles = []
            self._cache[CACHE_KEY] = raffles
            return raffles

    def invalidate(self) -> None:
        self._cache.pop(CACHE_KEY, None)

    async def get(self, raffle_id: int) -> Optional[Raffle]:
        for raffle in await self.raffles():
            if raffle.id == raffle_id:
                return raffle
        return DEFAULT_RAFFLE if raffle_id == DEFAULT_RAFFLE.id else None

    async def detect(self, text: Optional[str]) -> Raffle:
        """Pick the raffle a purchase message refers to.

        Order: keyword match, name match, first active raffle, first raffle,
        built-in default.
        """
        raffles = await self.raffles()
        active = [raffle for raffle in raffles if raffle.is_active]
        lowered = (text or "").lower()

        for raffle in active:
            if raffle.keyword and raffle.keyword.lower() in lowered:
                return raffle
        for raffle in active:
            if raffle.name and raffle.name.lower() in lowered:
                return raffle
        if active:
            return active[0]
        if raffles:
            return raffles[0]
        return DEFAULT_RAFFLE
