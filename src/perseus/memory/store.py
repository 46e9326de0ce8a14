"""
TTL key/value stores.

``CacheStore`` is the capability the gateway and user directory are written
against. Two variants exist and one is chosen at startup:

- :class:`MemoryCacheStore` keeps entries in a process-local dict.
- :class:`SqlCacheStore` persists entries in SQLite so identifier and user
  lookups survive restarts.

Both store an absolute expiry next to the value and treat an entry as absent
once ``now >= expires_at``; expired entries are evicted lazily on read.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol

from .sql.repositories import CacheRepo

Clock = Callable[[], float]


class CacheStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    async def sweep(self) -> int: ...


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


class MemoryCacheStore:
    """Ephemeral store backed by a dict guarded with a lock."""

    backend = "memory"

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_live(now):
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        entry = CacheEntry(key=key, value=value, expires_at=self._clock() + ttl_seconds)
        with self._lock:
            self._entries[key] = entry

    async def sweep(self) -> int:
        """Drop expired entries; optional, reads never depend on it."""

        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if not e.is_live(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqlCacheStore:
    """Durable store; values are JSON-encoded into the ``cache_entries`` table."""

    backend = "sqlite"

    def __init__(self, repo: CacheRepo, *, clock: Clock = time.time) -> None:
        self._repo = repo
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        row = await self._repo.fetch(key)
        if row is None:
            return None
        value_json, expires_at = row
        if not self._clock() < expires_at:
            await self._repo.delete(key)
            return None
        return json.loads(value_json)

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        await self._repo.upsert(key, json.dumps(value), self._clock() + ttl_seconds)

    async def sweep(self) -> int:
        return await self._repo.purge_expired(self._clock())


__all__ = ["CacheStore", "CacheEntry", "MemoryCacheStore", "SqlCacheStore"]
