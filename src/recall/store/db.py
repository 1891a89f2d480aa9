"""
SQLite bootstrap and connection helpers
=======================================

- One writer connection per store; readers open their own short-lived
  connections so reads never queue behind each other.
- WAL + pragmatic PRAGMAs for decent concurrent read perf.
"""

from __future__ import annotations

import pathlib
import sqlite3

MEMORY_PATH = ":memory:"


def _ensure_parent(path: str) -> None:
    if path != MEMORY_PATH:
        pathlib.Path(path).parent.mkdir(parents=True, exist_ok=True)


def connect(path: str, *, busy_timeout_ms: int = 3000) -> sqlite3.Connection:
    """Open the writer connection."""
    _ensure_parent(path)
    # Autocommit; we use explicit `with conn:` blocks in worker threads.
    conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)

    # Pragmas: order matters a bit; set WAL first, then tuning.
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-65536;")    # ~64 MiB page cache
    # Reduce SQLITE_BUSY errors under contention
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")

    # dict-like rows
    conn.row_factory = sqlite3.Row
    return conn


def connect_reader(path: str, *, busy_timeout_ms: int = 3000) -> sqlite3.Connection:
    """Open a read-only connection for a single scan."""
    conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)};")
    conn.execute("PRAGMA query_only=ON;")
    conn.row_factory = sqlite3.Row
    return conn


def migrate(conn: sqlite3.Connection) -> None:
    """
    Execute schema.sql (idempotent). Ensure schema.sql uses IF NOT EXISTS
    for tables and indexes.
    """
    schema_file = pathlib.Path(__file__).with_name("schema.sql")
    sql = schema_file.read_text(encoding="utf-8")
    with conn:  # single transaction for the whole migration
        conn.executescript(sql)


def wal_checkpoint_truncate(conn: sqlite3.Connection) -> None:
    """Run a WAL checkpoint + truncate to keep WAL from growing unbounded."""
    conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
