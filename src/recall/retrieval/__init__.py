"""
Public façade for retrieval
===========================

Stable, async API for recent-history lookups, semantic search, knowledge
lookups and user memories. Import from here::

    from recall.retrieval import Retrieval

    retrieval = Retrieval.from_config()
    await retrieval.start()
    hits = await retrieval.semantic_search(Scope(channel_id="123"), "pizza night")
"""

from .backfill import BackfillReport, Backfiller
from .cache import EmbeddingCache
from .facade import Retrieval

__all__ = ["BackfillReport", "Backfiller", "EmbeddingCache", "Retrieval"]
