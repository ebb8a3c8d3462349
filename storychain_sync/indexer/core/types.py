"""
Core types for event indexing.
"""

from datetime import datetime
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union


class IndexerStatus(Enum):
    """Status of the event indexer."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class EventKind(Enum):
    """Contract events the projection understands."""
    STORY_CREATED = "StoryCreated"
    CHAPTER_CREATED = "ChapterCreated"
    CHAPTER_FORKED = "ChapterForked"
    STORY_LIKED = "StoryLiked"
    CHAPTER_LIKED = "ChapterLiked"
    TIP_SENT = "TipSent"
    COMMENT_ADDED = "CommentAdded"


class ApplyOutcome(Enum):
    """What applying one event did to the store."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    MISSING_TARGET = "missing_target"
    STALE = "stale"


@dataclass(frozen=True)
class ChainEvent:
    """Position and time shared by every decoded event."""
    block_number: int
    transaction_hash: str
    log_index: int
    timestamp: int

    kind: ClassVar[EventKind]

    @property
    def position(self) -> Tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class StoryCreated(ChainEvent):
    story_id: str
    author: str
    ipfs_hash: str

    kind: ClassVar[EventKind] = EventKind.STORY_CREATED


@dataclass(frozen=True)
class _ChapterEvent(ChainEvent):
    story_id: str
    chapter_id: str
    parent_id: str
    author: str
    ipfs_hash: str
    # Filled in from the contract before projection when available
    chapter_number: Optional[int] = None
    fork_fee: int = 0


@dataclass(frozen=True)
class ChapterCreated(_ChapterEvent):
    kind: ClassVar[EventKind] = EventKind.CHAPTER_CREATED


@dataclass(frozen=True)
class ChapterForked(_ChapterEvent):
    kind: ClassVar[EventKind] = EventKind.CHAPTER_FORKED


@dataclass(frozen=True)
class StoryLiked(ChainEvent):
    story_id: str
    liker: str
    new_like_count: int

    kind: ClassVar[EventKind] = EventKind.STORY_LIKED


@dataclass(frozen=True)
class ChapterLiked(ChainEvent):
    chapter_id: str
    liker: str
    new_like_count: int

    kind: ClassVar[EventKind] = EventKind.CHAPTER_LIKED


@dataclass(frozen=True)
class TipSent(ChainEvent):
    story_id: str
    chapter_id: str
    tipper: str
    amount: int

    kind: ClassVar[EventKind] = EventKind.TIP_SENT


@dataclass(frozen=True)
class CommentAdded(ChainEvent):
    chapter_id: str
    commenter: str
    ipfs_hash: str = ""

    kind: ClassVar[EventKind] = EventKind.COMMENT_ADDED

    @property
    def comment_id(self) -> str:
        return f"{self.transaction_hash}-{self.log_index}"


DecodedEvent = Union[
    StoryCreated,
    ChapterCreated,
    ChapterForked,
    StoryLiked,
    ChapterLiked,
    TipSent,
    CommentAdded,
]

CHAPTER_EVENTS = (ChapterCreated, ChapterForked)


@dataclass(frozen=True)
class DecodeError:
    """A log that could not be turned into a typed event."""
    reason: str
    block_number: Optional[int] = None
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None


@dataclass(frozen=True)
class Watermark:
    """Highest block fully applied to the store."""
    block_number: int
    updated_at: datetime


@dataclass
class SyncResult:
    """Summary of one catch-up pass."""
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    chunks: int = 0
    events_applied: int = 0
    events_skipped: int = 0
    watermark: Optional[int] = None
    skipped: bool = False
    reason: Optional[str] = None


@dataclass
class ProcessingStats:
    """Statistics for event processing."""
    events_processed: int = 0
    stories_created: int = 0
    chapters_created: int = 0
    chapters_forked: int = 0
    likes_updated: int = 0
    tips_recorded: int = 0
    comments_added: int = 0
    duplicates: int = 0
    missing_targets: int = 0
    decode_errors: int = 0
    errors: int = 0
    last_processed_block: Optional[int] = None
    start_time: Optional[datetime] = None
