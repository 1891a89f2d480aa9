"""Record persistence: typed records over a single SQLite table."""

from .records import (
    MEMORY_SOURCES,
    MEMORY_TYPES,
    KnowledgeEntry,
    MemoryRecord,
    MessageRecord,
    Record,
    RecordKind,
    Scope,
    ScopeFilter,
    ScoredRecord,
    now_ms,
)
from .repository import RecordStore

__all__ = [
    "MEMORY_SOURCES",
    "MEMORY_TYPES",
    "KnowledgeEntry",
    "MemoryRecord",
    "MessageRecord",
    "Record",
    "RecordKind",
    "RecordStore",
    "Scope",
    "ScopeFilter",
    "ScoredRecord",
    "now_ms",
]
