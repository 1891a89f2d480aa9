"""
Record types
============

Every stored record shares a common base (``id``, ``scope``, ``content``,
``created_at``, optional ``embedding``) and adds a variant payload:

- :class:`MessageRecord` -- a chat message, authored by ``scope.user_id``.
- :class:`KnowledgeEntry` -- a guild-wide knowledge-base entry with tags.
- :class:`MemoryRecord` -- a fact/preference remembered about a user.

Records are frozen; the store assigns ``id`` on insert and hands back a copy.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import ClassVar, Tuple

import numpy as np

MEMORY_TYPES = ("preference", "fact", "instruction", "context", "profile_update")
MEMORY_SOURCES = ("explicit", "inferred")


class RecordKind(str, enum.Enum):
    MESSAGE = "message"
    KNOWLEDGE = "knowledge"
    MEMORY = "memory"


def now_ms() -> int:
    """Current wall-clock time as a millisecond epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Scope:
    """Partitioning keys. ``None`` means "not applicable" (e.g. no guild in DMs)."""

    channel_id: str | None = None
    guild_id: str | None = None
    user_id: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class Record:
    kind: ClassVar[RecordKind]

    content: str
    scope: Scope = field(default_factory=Scope)
    created_at: int = field(default_factory=now_ms)
    id: int | None = None
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


@dataclass(frozen=True, slots=True, kw_only=True)
class MessageRecord(Record):
    kind: ClassVar[RecordKind] = RecordKind.MESSAGE

    author_name: str = ""
    is_bot: bool = False
    platform: str = "discord"
    platform_message_id: str | None = None

    @property
    def author_id(self) -> str | None:
        return self.scope.user_id


@dataclass(frozen=True, slots=True, kw_only=True)
class KnowledgeEntry(Record):
    kind: ClassVar[RecordKind] = RecordKind.KNOWLEDGE

    tags: Tuple[str, ...] = ()
    added_by: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class MemoryRecord(Record):
    kind: ClassVar[RecordKind] = RecordKind.MEMORY

    memory_type: str = "fact"
    source: str = "explicit"
    is_global: bool = False

    def __post_init__(self) -> None:
        if self.memory_type not in MEMORY_TYPES:
            raise ValueError(f"Unknown memory type '{self.memory_type}'")
        if self.source not in MEMORY_SOURCES:
            raise ValueError(f"Unknown memory source '{self.source}'")


RECORD_CLASSES = {cls.kind: cls for cls in (MessageRecord, KnowledgeEntry, MemoryRecord)}


@dataclass(frozen=True, slots=True, kw_only=True)
class ScopeFilter:
    """
    Candidate selection for scans.

    Scope fields use exact equality and match anything when ``None``.
    ``direct_only`` restricts to records without a guild. ``include_global``
    widens the guild condition to rows flagged ``is_global`` (memories).
    """

    kind: RecordKind | None = None
    channel_id: str | None = None
    guild_id: str | None = None
    user_id: str | None = None
    direct_only: bool = False
    include_global: bool = False
    exclude_bot: bool = False
    since_ms: int | None = None
    tag: str | None = None
    memory_type: str | None = None
    has_embedding: bool | None = None

    @classmethod
    def for_scope(cls, scope: Scope, **kwargs) -> "ScopeFilter":
        return cls(channel_id=scope.channel_id, guild_id=scope.guild_id, user_id=scope.user_id, **kwargs)


@dataclass(frozen=True, slots=True)
class ScoredRecord:
    record: Record
    score: float
    similarity: float
