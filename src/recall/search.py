"""
Similarity search
=================

Brute-force scan over the scoped candidates, O(candidates x D). There is no
index structure; corpora are expected to stay in the tens of thousands of
rows per scope.

Scoring::

    sim        = clamp(cos(query, record), -1, 1)   # 0 on length mismatch / zero norm
    age_days   = max(0, (now - created_at) / 86_400_000)
    score      = max(0, sim) * decay_factor ** age_days

Ranking is score desc, then ``created_at`` desc, then ``id`` asc.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Iterable, List

import numpy as np

from recall.store import Record, RecordStore, ScopeFilter, ScoredRecord, now_ms

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000


def decay_weight(created_at: int, now: int, decay_factor: float) -> float:
    """Exponential per-day decay; ``decay_factor == 1`` disables it."""
    age_days = max(0.0, (now - created_at) / MS_PER_DAY)
    return decay_factor ** age_days


def rank(
    query_embedding,
    candidates: Iterable[Record],
    *,
    limit: int,
    decay_factor: float = 1.0,
    now: int | None = None,
) -> List[ScoredRecord]:
    """Score ``candidates`` against ``query_embedding`` and return the top ``limit``."""

    if not 0.0 < decay_factor <= 1.0:
        raise ValueError(f"decay_factor must be in (0, 1], got {decay_factor}")
    if limit <= 0:
        return []
    now = now_ms() if now is None else now

    q = np.asarray(query_embedding, dtype=np.float64).reshape(-1)
    q_norm = float(np.linalg.norm(q))
    if q_norm == 0.0:
        return []

    usable: List[Record] = []
    mismatched = 0
    for rec in candidates:
        if rec.embedding is None:
            continue
        if rec.embedding.shape[0] != q.shape[0]:
            mismatched += 1
            continue
        usable.append(rec)
    if mismatched:
        logger.warning("Skipped %d candidates with embedding dim != %d", mismatched, q.shape[0])
    if not usable:
        return []

    matrix = np.stack([rec.embedding for rec in usable]).astype(np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / (norms * q_norm), 0.0)
    sims = np.clip(sims, -1.0, 1.0)

    scored: List[ScoredRecord] = []
    for rec, sim in zip(usable, sims.tolist()):
        score = max(0.0, sim) * decay_weight(rec.created_at, now, decay_factor)
        # NaN never compares greater than zero
        if score > 0.0:
            scored.append(ScoredRecord(record=rec, score=score, similarity=sim))

    scored.sort(key=lambda s: (-s.score, -s.record.created_at, s.record.id))
    return scored[:limit]


class SearchEngine:
    """Loads candidates from the store and ranks them. Read-only."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def search(
        self,
        query_embedding,
        scope_filter: ScopeFilter,
        limit: int,
        decay_factor: float = 1.0,
        exclude_bot: bool = False,
        *,
        now: int | None = None,
    ) -> List[ScoredRecord]:
        """
        Rank records matching ``scope_filter``.

        ``limit`` is trusted as given; callers clamp it.
        """
        f = dataclasses.replace(
            scope_filter,
            has_embedding=True,
            exclude_bot=scope_filter.exclude_bot or exclude_bot,
        )
        candidates = await self._store.scan_by_scope(f, order_by="id")
        results = rank(query_embedding, candidates, limit=limit, decay_factor=decay_factor, now=now)
        logger.debug("Scanned %d candidates, returning %d", len(candidates), len(results))
        return results
