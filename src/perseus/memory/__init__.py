"""
Storage backends
================

:func:`open_backends` picks the durable (SQLite) or ephemeral (in-memory)
variant once at startup and returns matching cache and blacklist stores::

    from perseus.memory import open_backends

    backends = open_backends("sqlite", "data/perseus.sqlite3")
    await backends.cache.set("place:1", 2, 3600)
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass

from .blacklist import BlacklistStore, MemoryBlacklist, SqlBlacklist
from .sql import db as _db
from .sql.repositories import BlacklistRepo, CacheRepo
from .store import CacheStore, MemoryCacheStore, SqlCacheStore

logger = logging.getLogger(__name__)

__all__ = [
    "Backends",
    "open_backends",
    "CacheStore",
    "MemoryCacheStore",
    "SqlCacheStore",
    "BlacklistStore",
    "MemoryBlacklist",
    "SqlBlacklist",
]


@dataclass(slots=True)
class Backends:
    cache: CacheStore
    blacklist: BlacklistStore
    conn: sqlite3.Connection | None = None
    # True when a durable backend was requested but could not be opened.
    degraded: bool = False

    @property
    def durable(self) -> bool:
        return self.conn is not None

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None


def _memory_backends(*, degraded: bool = False) -> Backends:
    return Backends(cache=MemoryCacheStore(), blacklist=MemoryBlacklist(), degraded=degraded)


def open_backends(backend: str, db_path: str | None = None) -> Backends:
    """Open the configured storage backend.

    A SQLite failure falls back to the in-memory stores and marks the result
    as ``degraded`` so operators can see it in ``/blacklist status``.
    """

    if backend == "memory":
        logger.info("Storage backend: in-memory (blacklist and caches reset on restart)")
        return _memory_backends()

    if backend != "sqlite":
        raise ValueError(f"Unknown storage backend: {backend!r}")

    try:
        conn = _db.connect(db_path)
        _db.migrate(conn)
    except (sqlite3.Error, OSError):
        logger.exception(
            "Failed to open SQLite store at %s; falling back to in-memory stores", db_path
        )
        return _memory_backends(degraded=True)

    lock = asyncio.Lock()
    logger.info("Storage backend: sqlite (%s)", db_path or _db.db_path())
    return Backends(
        cache=SqlCacheStore(CacheRepo(conn, lock)),
        blacklist=SqlBlacklist(BlacklistRepo(conn, lock)),
        conn=conn,
    )
