"""
Repositories (SQL-only)
=======================
- Pure CRUD; TTL semantics live in the callers.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import Optional, Tuple


class CacheRepo:
    """Async helpers for the ``cache_entries`` table."""

    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def fetch(self, key: str) -> Optional[Tuple[str, float]]:
        """Return ``(value_json, expires_at)`` for ``key`` or ``None``."""
        sql = "SELECT value, expires_at FROM cache_entries WHERE key=?"

        def _query():
            row = self.conn.execute(sql, (key,)).fetchone()
            return (row["value"], float(row["expires_at"])) if row else None

        async with self._lock:
            return await asyncio.to_thread(_query)  # blocking sqlite call

    async def upsert(self, key: str, value_json: str, expires_at: float) -> None:
        sql = """
            INSERT INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
              value=excluded.value,
              expires_at=excluded.expires_at
        """

        def _run():
            with self.conn:
                self.conn.execute(sql, (key, value_json, expires_at))

        async with self._lock:
            await asyncio.to_thread(_run)

    async def delete(self, key: str) -> None:
        def _run():
            with self.conn:
                self.conn.execute("DELETE FROM cache_entries WHERE key=?", (key,))

        async with self._lock:
            await asyncio.to_thread(_run)

    async def purge_expired(self, now: float) -> int:
        """Delete every entry whose expiry is at or before ``now``."""

        def _run() -> int:
            with self.conn:
                cur = self.conn.execute("DELETE FROM cache_entries WHERE expires_at<=?", (now,))
            return cur.rowcount

        async with self._lock:
            return await asyncio.to_thread(_run)


class BlacklistRepo:
    """Async helpers for the ``blacklist`` table."""

    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def contains(self, user_id: str) -> bool:
        sql = "SELECT 1 FROM blacklist WHERE user_id=? LIMIT 1"

        def _query() -> bool:
            return self.conn.execute(sql, (user_id,)).fetchone() is not None

        async with self._lock:
            return await asyncio.to_thread(_query)  # blocking sqlite call

    async def add(self, user_id: str) -> bool:
        """Insert ``user_id``; returns ``False`` when already present."""
        sql = "INSERT OR IGNORE INTO blacklist(user_id, created_at) VALUES(?, ?)"

        def _run() -> bool:
            with self.conn:
                cur = self.conn.execute(sql, (user_id, time.time()))
            return cur.rowcount > 0

        async with self._lock:
            return await asyncio.to_thread(_run)

    async def remove(self, user_id: str) -> bool:
        def _run() -> bool:
            with self.conn:
                cur = self.conn.execute("DELETE FROM blacklist WHERE user_id=?", (user_id,))
            return cur.rowcount > 0

        async with self._lock:
            return await asyncio.to_thread(_run)

    async def count(self) -> int:
        def _query() -> int:
            return int(self.conn.execute("SELECT COUNT(*) FROM blacklist").fetchone()[0])

        async with self._lock:
            return await asyncio.to_thread(_query)
