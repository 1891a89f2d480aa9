"""
Record store (SQL-only)
=======================
- No embedding logic here; pure CRUD and scoped selects.
- Single writer of the ``embedding`` column.
- Blocking sqlite calls run in worker threads via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import closing
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from recall.embedding import codec
from recall.errors import CorruptDataError, ExecutionError

from . import db
from .records import (
    RECORD_CLASSES,
    KnowledgeEntry,
    MemoryRecord,
    MessageRecord,
    Record,
    RecordKind,
    Scope,
    ScopeFilter,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORDER_BY = {
    "created_at_desc": "created_at DESC, id DESC",
    "created_at_asc": "created_at ASC, id ASC",
    "id": "id ASC",
}

_COLUMNS = (
    "id, kind, channel_id, guild_id, user_id, content, created_at, "
    "platform, platform_message_id, author_name, is_bot, tags, added_by, "
    "memory_type, memory_source, is_global"
)

# NULL, or a blob that cannot be float32
_NEEDS_EMBEDDING = "embedding IS NULL OR length(embedding) % 4 != 0"
_BLANK = "' ' || char(9) || char(10) || char(13)"


def _where(f: ScopeFilter) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []

    if f.kind is not None:
        clauses.append("kind = ?")
        params.append(RecordKind(f.kind).value)
    if f.channel_id is not None:
        clauses.append("channel_id = ?")
        params.append(f.channel_id)
    if f.user_id is not None:
        clauses.append("user_id = ?")
        params.append(f.user_id)

    guild_clause: str | None = None
    if f.guild_id is not None:
        guild_clause = "guild_id = ?"
        params.append(f.guild_id)
    elif f.direct_only:
        guild_clause = "guild_id IS NULL"
    if guild_clause and f.include_global:
        clauses.append(f"({guild_clause} OR is_global = 1)")
    elif guild_clause:
        clauses.append(guild_clause)

    if f.exclude_bot:
        clauses.append("is_bot = 0")
    if f.since_ms is not None:
        clauses.append("created_at > ?")
        params.append(int(f.since_ms))
    if f.memory_type is not None:
        clauses.append("memory_type = ?")
        params.append(f.memory_type)
    if f.tag:
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(records.tags) t WHERE lower(t.value) = lower(?))"
        )
        params.append(f.tag)
    if f.has_embedding is True:
        clauses.append("embedding IS NOT NULL")
    elif f.has_embedding is False:
        clauses.append("embedding IS NULL")

    where = " AND ".join(clauses) if clauses else "1 = 1"
    return where, params


def _row_values(record: Record) -> tuple:
    scope = record.scope
    emb = codec.encode(record.embedding) if record.embedding is not None else None
    base = [record.kind.value, scope.channel_id, scope.guild_id, scope.user_id, record.content, emb, int(record.created_at)]

    if isinstance(record, MessageRecord):
        variant = [record.platform, record.platform_message_id, record.author_name, int(record.is_bot), "[]", None, None, None, 0]
    elif isinstance(record, KnowledgeEntry):
        variant = [None, None, None, 0, json.dumps(list(record.tags), ensure_ascii=False), record.added_by, None, None, 0]
    elif isinstance(record, MemoryRecord):
        variant = [None, None, None, 0, "[]", None, record.memory_type, record.source, int(record.is_global)]
    else:
        raise TypeError(f"Unsupported record type {type(record).__name__}")
    return tuple(base + variant)


def _decode_embedding(rid: int, blob: bytes | None):
    if blob is None:
        return None
    try:
        return codec.decode(blob)
    except CorruptDataError as exc:
        logger.warning("Skipping corrupt embedding (id=%s): %s", rid, exc)
        return None


def record_from_row(row: sqlite3.Row, *, with_embedding: bool = True) -> Record:
    """Map a ``records`` row onto its variant dataclass."""

    kind = RecordKind(row["kind"])
    common = dict(
        id=int(row["id"]),
        scope=Scope(channel_id=row["channel_id"], guild_id=row["guild_id"], user_id=row["user_id"]),
        content=row["content"],
        created_at=int(row["created_at"]),
        embedding=_decode_embedding(row["id"], row["embedding"]) if with_embedding else None,
    )
    cls = RECORD_CLASSES[kind]
    if kind is RecordKind.MESSAGE:
        return cls(
            **common,
            author_name=row["author_name"] or "",
            is_bot=bool(row["is_bot"]),
            platform=row["platform"] or "",
            platform_message_id=row["platform_message_id"],
        )
    if kind is RecordKind.KNOWLEDGE:
        return cls(**common, tags=tuple(json.loads(row["tags"] or "[]")), added_by=row["added_by"])
    return cls(
        **common,
        memory_type=row["memory_type"],
        source=row["memory_source"],
        is_global=bool(row["is_global"]),
    )


class RecordStore:
    """
    Typed persistence for :class:`Record` variants.

    Writes share one connection behind an ``asyncio.Lock``; reads open their
    own connection so they never wait on each other. An in-memory database
    cannot be shared across connections, so with ``":memory:"`` reads also go
    through the writer connection and lock.
    """

    def __init__(self, path: str, *, busy_timeout_ms: int = 3000) -> None:
        self.path = path
        self._busy_timeout_ms = busy_timeout_ms
        self.conn = db.connect(path, busy_timeout_ms=busy_timeout_ms)
        db.migrate(self.conn)
        self._lock = asyncio.Lock()

    def close(self) -> None:
        self.conn.close()

    # --- plumbing -----------------------------------------------------------

    async def _write(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        try:
            async with self._lock:
                return await asyncio.to_thread(fn, self.conn)
        except sqlite3.Error as exc:
            logger.error("Record store write failed: %s", exc)
            raise ExecutionError(f"Record store write failed: {exc}") from exc

    async def _read(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        if self.path == db.MEMORY_PATH:
            return await self._write(fn)

        def _run() -> T:
            with closing(db.connect_reader(self.path, busy_timeout_ms=self._busy_timeout_ms)) as conn:
                return fn(conn)

        try:
            return await asyncio.to_thread(_run)
        except sqlite3.Error as exc:
            logger.error("Record store read failed: %s", exc)
            raise ExecutionError(f"Record store read failed: {exc}") from exc

    # --- writes -------------------------------------------------------------

    async def insert(self, record: Record) -> int:
        """
        Persist ``record`` and return its new id.

        Messages are idempotent on ``(platform, platform_message_id)``; a
        duplicate insert returns the existing id.
        """
        sql = f"""
            INSERT INTO records (
              kind, channel_id, guild_id, user_id, content, embedding, created_at,
              platform, platform_message_id, author_name, is_bot,
              tags, added_by, memory_type, memory_source, is_global
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        values = _row_values(record)

        def _run(conn: sqlite3.Connection) -> int:
            try:
                with conn:
                    cur = conn.execute(sql, values)
                return int(cur.lastrowid)
            except sqlite3.IntegrityError:
                if not isinstance(record, MessageRecord) or record.platform_message_id is None:
                    raise
                row = conn.execute(
                    "SELECT id FROM records WHERE kind = 'message' AND platform = ? AND platform_message_id = ?",
                    (record.platform, record.platform_message_id),
                ).fetchone()
                if row is None:
                    raise
                return int(row[0])

        return await self._write(_run)

    async def attach_embedding(self, rid: int, embedding) -> bool:
        """
        Attach ``embedding`` to record ``rid``.

        Returns ``False`` when the record is missing or already has a valid
        one; a corrupt blob is replaced.
        The blob is written by a single UPDATE, so readers see either NULL or
        the complete value.
        """
        blob = codec.encode(embedding)
        sql = f"UPDATE records SET embedding = ? WHERE id = ? AND ({_NEEDS_EMBEDDING})"

        def _run(conn: sqlite3.Connection) -> bool:
            with conn:
                cur = conn.execute(sql, (blob, int(rid)))
            return cur.rowcount > 0

        return await self._write(_run)

    # --- reads --------------------------------------------------------------

    async def get(self, rid: int) -> Optional[Record]:
        sql = f"SELECT {_COLUMNS}, embedding FROM records WHERE id = ?"

        def _query(conn: sqlite3.Connection) -> Optional[Record]:
            row = conn.execute(sql, (int(rid),)).fetchone()
            return record_from_row(row) if row else None

        return await self._read(_query)

    async def scan_by_scope(
        self,
        scope_filter: ScopeFilter,
        order_by: str = "created_at_desc",
        limit: int | None = None,
        *,
        with_embeddings: bool = True,
    ) -> List[Record]:
        """Return records matching ``scope_filter`` in ``order_by`` order."""

        if order_by not in ORDER_BY:
            raise ValueError(f"Unknown order_by '{order_by}'")
        where, params = _where(scope_filter)
        emb_col = "embedding" if with_embeddings else "NULL AS embedding"
        sql = f"SELECT {_COLUMNS}, {emb_col} FROM records WHERE {where} ORDER BY {ORDER_BY[order_by]}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        def _query(conn: sqlite3.Connection) -> List[Record]:
            rows = conn.execute(sql, params).fetchall()
            return [record_from_row(r, with_embedding=with_embeddings) for r in rows]

        return await self._read(_query)

    async def count(self, scope_filter: ScopeFilter) -> int:
        where, params = _where(scope_filter)
        sql = f"SELECT COUNT(*) FROM records WHERE {where}"

        def _query(conn: sqlite3.Connection) -> int:
            return int(conn.execute(sql, params).fetchone()[0])

        return await self._read(_query)

    async def list_tags(self, guild_id: str) -> List[str]:
        """All distinct knowledge tags in ``guild_id``, lowercased and sorted."""

        sql = "SELECT DISTINCT tags FROM records WHERE kind = 'knowledge' AND guild_id = ?"

        def _query(conn: sqlite3.Connection) -> List[str]:
            tags: set[str] = set()
            for row in conn.execute(sql, (guild_id,)).fetchall():
                tags.update(str(t).lower() for t in json.loads(row[0] or "[]"))
            return sorted(tags)

        return await self._read(_query)

    async def checkpoint(self) -> None:
        """Truncate the WAL so it does not grow unbounded."""

        if self.path != db.MEMORY_PATH:
            await self._write(db.wal_checkpoint_truncate)

    async def pending_embeddings(self, limit: int, *, after_id: int = 0) -> Sequence[Record]:
        """
        Records still waiting for an embedding, in id order from ``after_id``.

        Blank content is never embeddable and is left out. Rows whose blob is
        corrupt count as pending so the sweep can repair them.
        """
        sql = f"""
            SELECT {_COLUMNS}, NULL AS embedding FROM records
            WHERE ({_NEEDS_EMBEDDING}) AND trim(content, {_BLANK}) != '' AND id > ?
            ORDER BY id ASC LIMIT ?
        """

        def _query(conn: sqlite3.Connection) -> List[Record]:
            rows = conn.execute(sql, (int(after_id), int(limit))).fetchall()
            return [record_from_row(r, with_embedding=False) for r in rows]

        return await self._read(_query)
