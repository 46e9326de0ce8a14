"""
SQLite bootstrap and connection helpers
=======================================

- Database path comes from ``Config.storage.DB_PATH``.
- WAL + pragmatic PRAGMAs for decent concurrent read perf.
"""

from __future__ import annotations

import pathlib
import sqlite3
from typing import Optional

from perseus.config import Config


def db_path() -> str:
    return str(Config.storage.DB_PATH)


def connect(path: Optional[str] = None) -> sqlite3.Connection:
    target = path or db_path()
    if target != ":memory:":
        pathlib.Path(target).parent.mkdir(parents=True, exist_ok=True)

    # Autocommit; we use explicit `with conn:` blocks in worker threads.
    conn = sqlite3.connect(
        target,
        isolation_level=None,
        check_same_thread=False,
    )

    # Pragmas: order matters a bit; set WAL first, then tuning.
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    # Reduce SQLITE_BUSY errors under contention
    conn.execute("PRAGMA busy_timeout=3000;")    # 3s

    # dict-like rows
    conn.row_factory = sqlite3.Row

    return conn


def migrate(conn: sqlite3.Connection) -> None:
    """
    Execute schema.sql (idempotent). Every statement uses IF NOT EXISTS.
    """
    schema_file = pathlib.Path(__file__).with_name("schema.sql")
    sql = schema_file.read_text(encoding="utf-8")
    with conn:  # single transaction for the whole migration
        conn.executescript(sql)
