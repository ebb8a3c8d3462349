"""
Core indexer types.

Import EventIndexer from ``storychain_sync.indexer.core.event_indexer``.
"""

from .types import (
    IndexerStatus,
    ProcessingStats,
    EventKind,
    ApplyOutcome,
    DecodedEvent,
    DecodeError,
    SyncResult,
    Watermark,
)

__all__ = [
    "IndexerStatus",
    "ProcessingStats",
    "EventKind",
    "ApplyOutcome",
    "DecodedEvent",
    "DecodeError",
    "SyncResult",
    "Watermark",
]
