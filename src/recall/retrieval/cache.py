"""
Query embedding cache.

Owned by the retrieval facade and built once at startup. Keys are the
stripped query text, which never changes meaning, so entries need no
invalidation; the LRU bound only caps memory. Concurrent requests for the
same text share one in-flight embed call.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict

import numpy as np

from recall.embedding import EmbeddingProvider

logger = logging.getLogger(__name__)


class EmbeddingCache:
    def __init__(self, provider: EmbeddingProvider, max_size: int = 256) -> None:
        self._provider = provider
        self._max_size = max(0, int(max_size))
        self._entries: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return text.strip() in self._entries

    def clear(self) -> None:
        self._entries.clear()

    async def embed(self, text: str) -> np.ndarray:
        """Return the embedding for ``text``, computing it at most once."""

        key = text.strip()
        hit = self._entries.get(key)
        if hit is not None:
            self._entries.move_to_end(key)
            return hit

        fut = self._in_flight.get(key)
        if fut is None:
            fut = asyncio.ensure_future(self._fill(key))
            self._in_flight[key] = fut
            fut.add_done_callback(lambda _f, k=key: self._in_flight.pop(k, None))
        # shield: one abandoned caller must not cancel the shared call
        return await asyncio.shield(fut)

    async def _fill(self, key: str) -> np.ndarray:
        vec = await self._provider.embed(key)
        if self._max_size:
            self._entries[key] = vec
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
        return vec
