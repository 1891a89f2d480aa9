"""
Retrieval facade
================

The one call surface for consumers. Wires the embedding provider, record
store and search engine together, validates input and clamps limits before
anything reaches the engine.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Iterable, List, Optional, Tuple

from recall import config, maintenance
from recall.embedding import EmbeddingProvider, backend_from_config
from recall.errors import (
    ConfigurationError,
    ContextError,
    ExecutionError,
    InvalidParametersError,
    NotFoundError,
    RetrievalError,
)
from recall.search import MS_PER_DAY, SearchEngine, rank
from recall.store import (
    KnowledgeEntry,
    MemoryRecord,
    MessageRecord,
    Record,
    RecordKind,
    RecordStore,
    Scope,
    ScopeFilter,
    ScoredRecord,
    now_ms,
)

from .backfill import Backfiller
from .cache import EmbeddingCache

logger = logging.getLogger(__name__)


def _sid(value) -> str | None:
    """Normalize a platform id (int or str) to the stored string form."""
    return None if value is None else str(value)


def _clamp(limit, default: int, maximum: int) -> int:
    if limit is None:
        return default
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidParametersError("'limit' must be an integer")
    return max(1, min(maximum, limit))


def _in_scope(record: Record, scope: Scope) -> bool:
    """True when every key present in ``scope`` matches the record's scope."""
    for name in ("channel_id", "guild_id", "user_id"):
        want = getattr(scope, name)
        if want is None:
            continue
        if name == "guild_id" and isinstance(record, MemoryRecord) and record.is_global:
            continue
        if getattr(record.scope, name) != want:
            return False
    return True


def _is_empty(scope: Scope) -> bool:
    return scope.channel_id is None and scope.guild_id is None and scope.user_id is None


class Retrieval:
    """Semantic and chronological lookups over messages, knowledge and memories."""

    def __init__(
        self,
        store: RecordStore,
        provider: EmbeddingProvider,
        *,
        settings=None,
        cache: EmbeddingCache | None = None,
        clock=now_ms,
    ) -> None:
        self.settings = settings or config.retrieval
        self.store = store
        self.provider = provider
        self.engine = SearchEngine(store)
        self.cache = cache or EmbeddingCache(provider)
        self.backfiller = Backfiller(store, provider, batch_size=self.settings.BACKFILL_BATCH_SIZE)
        self._clock = clock
        self._maintenance: asyncio.Task | None = None

    @classmethod
    def from_config(cls) -> "Retrieval":
        emb_cfg = config.embedding
        store = RecordStore(config.storage.SQL_DB_PATH, busy_timeout_ms=config.storage.BUSY_TIMEOUT_MS)
        provider = EmbeddingProvider(backend_from_config(emb_cfg), emb_cfg.EMB_DIM, batch_size=emb_cfg.BATCH_SIZE)
        return cls(store, provider, cache=EmbeddingCache(provider, emb_cfg.QUERY_CACHE_SIZE))

    async def start(self) -> None:
        """Load the embedding model. A failure leaves the facade in degraded mode."""
        try:
            await self.provider.load()
        except ConfigurationError as exc:
            logger.warning("Semantic search disabled: %s", exc)

    async def start_maintenance(self) -> asyncio.Task:
        """Sweep pending embeddings now and every ``MAINTENANCE_INTERVAL`` seconds."""
        if self._maintenance is None:
            self._maintenance = await maintenance.start_backfill(
                self.backfiller, self.settings.MAINTENANCE_INTERVAL, self.store
            )
        return self._maintenance

    async def close(self) -> None:
        await maintenance.shutdown(self._maintenance)
        self._maintenance = None
        await self.backfiller.drain()
        self.store.close()

    # --- validation ---------------------------------------------------------

    def _validate_query(self, query_text) -> str:
        if not isinstance(query_text, str):
            raise InvalidParametersError("Search query must be a string")
        query = query_text.strip()
        if len("".join(query.split())) < self.settings.MIN_QUERY_CHARS:
            raise InvalidParametersError(
                f"Search query must be at least {self.settings.MIN_QUERY_CHARS} characters"
            )
        if len(query) > self.settings.MAX_QUERY_CHARS:
            raise InvalidParametersError(
                f"Search query must be at most {self.settings.MAX_QUERY_CHARS} characters"
            )
        return query

    def _validate_decay(self, decay_factor) -> float:
        if decay_factor is None:
            return self.settings.DECAY_FACTOR
        if isinstance(decay_factor, bool) or not isinstance(decay_factor, (int, float)):
            raise InvalidParametersError("'decay_factor' must be a number")
        if not 0.0 < float(decay_factor) <= 1.0:
            raise InvalidParametersError("'decay_factor' must be in (0, 1]")
        return float(decay_factor)

    def _require_ready(self) -> None:
        if not self.provider.is_ready():
            raise ConfigurationError("Embedding model not ready. Try using \"recent\" mode instead.")

    async def _search(self, query_vec, scope_filter: ScopeFilter, limit: int, decay: float) -> List[ScoredRecord]:
        try:
            return await self.engine.search(query_vec, scope_filter, limit, decay, now=self._clock())
        except RetrievalError:
            raise
        except Exception as exc:
            logger.exception("Search failed")
            raise ExecutionError(f"Search failed: {exc}") from exc

    # --- ingestion ----------------------------------------------------------

    def _schedule_embedding(self, record: Record) -> None:
        if self.provider.is_ready() and record.content.strip():
            self.backfiller.schedule(record)

    async def add_message(
        self,
        *,
        channel_id,
        author_id,
        content: str,
        guild_id=None,
        author_name: str = "",
        is_bot: bool = False,
        platform: str = "discord",
        platform_message_id=None,
        created_at: int | None = None,
    ) -> int:
        """Store a chat message; its embedding is attached in the background."""

        record = MessageRecord(
            content=content,
            scope=Scope(channel_id=_sid(channel_id), guild_id=_sid(guild_id), user_id=_sid(author_id)),
            created_at=self._clock() if created_at is None else int(created_at),
            author_name=author_name,
            is_bot=is_bot,
            platform=platform,
            platform_message_id=_sid(platform_message_id),
        )
        rid = await self.store.insert(record)
        self._schedule_embedding(dataclasses.replace(record, id=rid))
        return rid

    async def add_knowledge(self, *, guild_id, content: str, tags: Iterable[str] = (), added_by=None) -> int:
        if guild_id is None:
            raise ContextError("Knowledge base is only available in servers, not DMs")
        record = KnowledgeEntry(
            content=content,
            scope=Scope(guild_id=_sid(guild_id)),
            created_at=self._clock(),
            tags=tuple(t.strip() for t in tags if t and t.strip()),
            added_by=_sid(added_by),
        )
        rid = await self.store.insert(record)
        self._schedule_embedding(dataclasses.replace(record, id=rid))
        return rid

    async def add_memory(
        self,
        *,
        user_id,
        content: str,
        guild_id=None,
        memory_type: str = "fact",
        source: str = "explicit",
        is_global: bool = False,
    ) -> Tuple[int, bool]:
        """
        Store a memory unless a near-duplicate of the same type exists.

        Returns ``(id, created)``; ``created`` is ``False`` when an existing
        memory was matched instead.
        """
        if user_id is None:
            raise ContextError("Memories need a user")
        try:
            record = MemoryRecord(
                content=content,
                scope=Scope(guild_id=None if is_global else _sid(guild_id), user_id=_sid(user_id)),
                created_at=self._clock(),
                memory_type=memory_type,
                source=source,
                is_global=is_global,
            )
        except ValueError as exc:
            raise InvalidParametersError(str(exc)) from exc

        vec = None
        if self.provider.is_ready() and content.strip():
            try:
                vec = await self.provider.embed(content)
            except RetrievalError as exc:
                logger.warning("Memory embed failed, storing without embedding: %s", exc)

        if vec is not None:
            existing = await self._find_duplicate_memory(record, vec)
            if existing is not None:
                logger.info("Memory matches existing id=%s; not duplicating", existing.id)
                return int(existing.id), False
            record = dataclasses.replace(record, embedding=vec)

        rid = await self.store.insert(record)
        return rid, True

    async def _find_duplicate_memory(self, record: MemoryRecord, vec) -> Optional[MemoryRecord]:
        f = ScopeFilter(
            kind=RecordKind.MEMORY,
            user_id=record.scope.user_id,
            guild_id=record.scope.guild_id,
            direct_only=record.scope.guild_id is None and not record.is_global,
            memory_type=record.memory_type,
            has_embedding=True,
        )
        candidates = [
            r for r in await self.store.scan_by_scope(f, order_by="id")
            if isinstance(r, MemoryRecord) and r.is_global == record.is_global
        ]
        best = rank(vec, candidates, limit=1, decay_factor=1.0)
        if best and best[0].similarity > self.settings.MEMORY_DEDUP_THRESHOLD:
            return best[0].record
        return None

    # --- retrieval ----------------------------------------------------------

    async def recent(self, scope: Scope, limit=None) -> List[MessageRecord]:
        """Latest messages in ``scope``, returned oldest first."""

        if _is_empty(scope):
            raise ContextError("Recent history needs a channel, guild or user scope")
        limit = _clamp(limit, self.settings.RECENT_DEFAULT_LIMIT, self.settings.RECENT_MAX_LIMIT)
        newest_first = await self.store.scan_by_scope(
            ScopeFilter.for_scope(scope, kind=RecordKind.MESSAGE),
            order_by="created_at_desc",
            limit=limit,
            with_embeddings=False,
        )
        return list(reversed(newest_first))

    async def semantic_search(
        self,
        scope: Scope,
        query_text: str,
        limit=None,
        decay_factor=None,
        *,
        exclude_bot: bool = True,
    ) -> List[ScoredRecord]:
        """
        Rank messages in ``scope`` by similarity to ``query_text`` with
        recency decay. An empty list means nothing relevant was found.
        """
        query = self._validate_query(query_text)
        if _is_empty(scope):
            raise ContextError("Search needs a channel, guild or user scope")
        decay = self._validate_decay(decay_factor)
        limit = _clamp(limit, self.settings.SEARCH_DEFAULT_LIMIT, self.settings.SEARCH_MAX_LIMIT)
        self._require_ready()

        query_vec = await self.cache.embed(query)

        since = None
        if self.settings.MESSAGE_TIME_RANGE_DAYS > 0:
            since = self._clock() - int(self.settings.MESSAGE_TIME_RANGE_DAYS * MS_PER_DAY)
        f = ScopeFilter.for_scope(scope, kind=RecordKind.MESSAGE, exclude_bot=exclude_bot, since_ms=since)
        results = await self._search(query_vec, f, limit, decay)
        logger.info(
            "Semantic search (scope=%s results=%d top=%.3f)",
            scope,
            len(results),
            results[0].score if results else 0.0,
        )
        return results

    async def knowledge_search(self, guild_id, query_text: str, *, tag: str | None = None, limit=None) -> List[ScoredRecord]:
        """
        Search a guild's knowledge base. No recency decay; knowledge does not
        age. Falls back to substring matching when the model is unavailable.
        """
        if guild_id is None:
            raise ContextError("Knowledge base is only available in servers, not DMs")
        query = self._validate_query(query_text)
        limit = _clamp(limit, 5, self.settings.SEARCH_MAX_LIMIT)
        f = ScopeFilter(kind=RecordKind.KNOWLEDGE, guild_id=_sid(guild_id), tag=tag or None)

        if not self.provider.is_ready():
            return await self._text_search(f, query, limit)

        query_vec = await self.cache.embed(query)
        results = await self._search(query_vec, f, self.settings.SEARCH_MAX_LIMIT, 1.0)
        return [r for r in results if r.score >= self.settings.KNOWLEDGE_MIN_SCORE][:limit]

    async def _text_search(self, scope_filter: ScopeFilter, query: str, limit: int) -> List[ScoredRecord]:
        needle = query.lower()
        scored: List[ScoredRecord] = []
        for rec in await self.store.scan_by_scope(scope_filter, with_embeddings=False):
            haystack = rec.content.lower()
            if needle in haystack:
                score = min(2 * len(needle) / len(haystack), 1.0)
                scored.append(ScoredRecord(record=rec, score=score, similarity=score))
        scored.sort(key=lambda s: (-s.score, -s.record.created_at, s.record.id))
        return scored[:limit]

    async def recall_memories(self, user_id, guild_id=None, query_text: str | None = None, limit=None) -> List[ScoredRecord]:
        """
        Memories about ``user_id`` visible from ``guild_id`` (or DMs), plus
        global ones. Relevant matches first; otherwise the most recent.
        """
        if user_id is None:
            raise ContextError("Memories need a user")
        limit = _clamp(limit, self.settings.SEARCH_DEFAULT_LIMIT, self.settings.SEARCH_MAX_LIMIT)
        f = ScopeFilter(
            kind=RecordKind.MEMORY,
            user_id=_sid(user_id),
            guild_id=_sid(guild_id),
            direct_only=guild_id is None,
            include_global=True,
        )

        query = None
        if query_text is not None and (not isinstance(query_text, str) or query_text.strip()):
            query = self._validate_query(query_text)

        if query is not None and self.provider.is_ready():
            query_vec = await self.cache.embed(query)
            results = await self._search(query_vec, f, limit, 1.0)
            relevant = [r for r in results if r.score > self.settings.MEMORY_MIN_SCORE]
            if relevant:
                return relevant

        latest = await self.store.scan_by_scope(f, order_by="created_at_desc", limit=limit, with_embeddings=False)
        return [ScoredRecord(record=r, score=0.0, similarity=0.0) for r in latest]

    async def by_id(self, rid, scope: Scope, kind: RecordKind | None = None) -> Record:
        """
        Point lookup restricted to the caller's scope. Records outside it are
        reported as missing so ids cannot be probed across scopes.
        """
        if isinstance(rid, bool) or not isinstance(rid, int):
            raise InvalidParametersError("'id' must be an integer")
        if _is_empty(scope):
            raise ContextError("Lookup needs a channel, guild or user scope")

        record = await self.store.get(rid)
        if record is None or (kind is not None and record.kind is not RecordKind(kind)) or not _in_scope(record, scope):
            raise NotFoundError(f"Entry #{rid} not found")
        return record

    async def by_tag(self, scope: Scope, tag: str, limit=None) -> List[KnowledgeEntry]:
        if scope.guild_id is None:
            raise ContextError("Knowledge base is only available in servers, not DMs")
        if not tag or not tag.strip():
            raise InvalidParametersError("'tag' must be a non-empty string")
        limit = _clamp(limit, self.settings.RECENT_DEFAULT_LIMIT, self.settings.RECENT_MAX_LIMIT)
        return await self.store.scan_by_scope(
            ScopeFilter(kind=RecordKind.KNOWLEDGE, guild_id=scope.guild_id, tag=tag.strip()),
            order_by="created_at_desc",
            limit=limit,
            with_embeddings=False,
        )

    async def list_tags(self, scope: Scope) -> List[str]:
        if scope.guild_id is None:
            raise ContextError("Knowledge base is only available in servers, not DMs")
        return await self.store.list_tags(scope.guild_id)


    async def count(self, scope: Scope, kind: RecordKind | None = None) -> int:
        """Number of records in ``scope``, optionally of one ``kind``."""
        if _is_empty(scope):
            raise ContextError("Counting needs a channel, guild or user scope")
        return await self.store.count(ScopeFilter.for_scope(scope, kind=kind))
