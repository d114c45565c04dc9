from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

HISTORY_KEY = "download_history"
HISTORY_LIMIT = 5


@dataclass(slots=True)
class HistoryEntry:
    source_url: str
    timestamp: int
    kind: str
    title: str
    proxied_download_url: str
    thumbnail_url: Optional[str] = None
    picker: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            source_url=item["source_url"],
            timestamp=int(item.get("timestamp", 0)),
            kind=item.get("kind", "video"),
            title=item.get("title", ""),
            proxied_download_url=item.get("proxied_download_url", ""),
            thumbnail_url=item.get("thumbnail_url"),
            picker=item.get("picker"),
        )


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """One file per key under ``directory``; writes are serialized by a lock."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        async with self._lock:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._path(key).write_text, value, encoding="utf-8")

    async def remove(self, key: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class HistoryService:
    """Most-recent-first list of successful lookups, capped and de-duplicated by source URL."""

    def __init__(self, store: KeyValueStore, limit: int = HISTORY_LIMIT, key: str = HISTORY_KEY) -> None:
        self.store = store
        self.limit = limit
        self.key = key

    async def list(self) -> List[HistoryEntry]:
        raw = await self.store.get(self.key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
            return [HistoryEntry.from_dict(item) for item in items][: self.limit]
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable history", extra={"key": self.key})
            return []

    async def record(self, entry: HistoryEntry) -> List[HistoryEntry]:
        existing = await self.list()
        entries = [entry] + [item for item in existing if item.source_url != entry.source_url]
        entries = entries[: self.limit]
        await self.store.set(self.key, json.dumps([asdict(item) for item in entries], ensure_ascii=False))
        return entries

    async def clear(self) -> None:
        await self.store.remove(self.key)
