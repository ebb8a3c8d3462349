"""
Database models for the StoryChain sync service.

Contains SQLAlchemy models that project the contract's event stream
into queryable current state.
"""

from .base import Base, BaseModel, TimestampMixin, Uint256
from .story import Story
from .chapter import Chapter, ROOT_PARENT_ID
from .comment import Comment
from .chain_metadata import ChainMetadata, WATERMARK_ROW_ID
from .applied_event import AppliedEvent, LedgerTarget

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "Uint256",
    "Story",
    "Chapter",
    "ROOT_PARENT_ID",
    "Comment",
    "ChainMetadata",
    "WATERMARK_ROW_ID",
    "AppliedEvent",
    "LedgerTarget",
]
