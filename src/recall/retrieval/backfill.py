"""
Embedding backfill
==================

Records are written without waiting on the model. Their embeddings are
attached afterwards, either by a fire-and-forget task scheduled at insert
time or by the periodic :meth:`Backfiller.run_once` sweep.

Backfill is per-item best effort: a failed batch falls back to embedding
items one at a time, and the report lists exactly which ids still need work.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from recall.embedding import EmbeddingProvider
from recall.errors import RetrievalError
from recall.store import Record, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    attached: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    # already had an embedding (another writer got there first) or vanished
    skipped: List[int] = field(default_factory=list)
    # a full page was read; the sweep has more to look at
    has_more: bool = False

    def merge(self, other: "BackfillReport") -> None:
        self.attached.extend(other.attached)
        self.failed.extend(other.failed)
        self.skipped.extend(other.skipped)


class Backfiller:
    def __init__(self, store: RecordStore, provider: EmbeddingProvider, *, batch_size: int = 50) -> None:
        self._store = store
        self._provider = provider
        self.batch_size = max(1, int(batch_size))
        self._tasks: Set[asyncio.Task] = set()
        # last id handed to a sweep; failures stay behind it until the sweep wraps
        self._cursor = 0

    async def _embed_each(self, records: Sequence[Record]) -> List[Optional[object]]:
        vecs: List[Optional[object]] = []
        for rec in records:
            try:
                vecs.append(await self._provider.embed(rec.content))
            except RetrievalError as exc:
                logger.warning("Embedding failed for record id=%s: %s", rec.id, exc)
                vecs.append(None)
        return vecs

    async def embed_records(self, records: Sequence[Record]) -> BackfillReport:
        """Embed and attach ``records``; never raises for per-item failures."""

        report = BackfillReport()
        if not records:
            return report
        if not self._provider.is_ready():
            logger.info("Embedder not ready; deferring %d records", len(records))
            report.failed.extend(int(r.id) for r in records)
            return report

        try:
            vecs = await self._provider.embed_batch([r.content for r in records])
        except RetrievalError as exc:
            logger.warning("Batch embed of %d records failed (%s); retrying one by one", len(records), exc)
            vecs = await self._embed_each(records)

        for rec, vec in zip(records, vecs):
            if vec is None:
                report.failed.append(int(rec.id))
                continue
            try:
                ok = await self._store.attach_embedding(int(rec.id), vec)
            except RetrievalError as exc:
                logger.error("Attaching embedding failed (id=%s): %s", rec.id, exc)
                report.failed.append(int(rec.id))
                continue
            (report.attached if ok else report.skipped).append(int(rec.id))
        return report

    async def run_once(self, limit: int | None = None) -> BackfillReport:
        """
        Embed the next page of up to ``limit`` (default ``batch_size``) pending
        records.

        Pages advance by id, so records that keep failing do not hold back
        newer ones. After the last page the sweep starts over from the
        beginning and retries earlier failures.
        """

        if not self._provider.is_ready():
            return BackfillReport()
        limit = limit or self.batch_size
        pending = await self._store.pending_embeddings(limit, after_id=self._cursor)
        report = await self.embed_records(pending)
        report.has_more = len(pending) >= limit
        self._cursor = int(pending[-1].id) if report.has_more else 0
        if pending:
            logger.info(
                "Backfill pass: attached=%d failed=%d skipped=%d",
                len(report.attached),
                len(report.failed),
                len(report.skipped),
            )
        return report

    def schedule(self, record: Record) -> asyncio.Task:
        """Fire-and-forget embedding of one freshly inserted record."""

        task = asyncio.create_task(self.embed_records([record]))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background embedding task failed: %s", exc)

    async def drain(self) -> None:
        """Wait for scheduled background tasks (shutdown, tests)."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
