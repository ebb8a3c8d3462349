"""
Schemas for projected chain data and indexer control.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes with camelCase keys, accepts either case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoryResponse(CamelModel):
    id: str
    author: str
    ipfs_hash: str
    created_time: int
    likes: int
    fork_count: int
    total_tips: str = Field(description="Accumulated tips in wei")
    total_tip_count: int
    block_number: int
    transaction_hash: str


class ChapterResponse(CamelModel):
    id: str
    story_id: str
    parent_id: str
    author: str
    ipfs_hash: str
    created_time: int
    likes: int
    fork_count: int
    chapter_number: int
    fork_fee: str = Field(description="Fork fee in wei")
    total_tips: str = Field(description="Accumulated tips in wei")
    total_tip_count: int
    block_number: int
    transaction_hash: str


class CommentResponse(CamelModel):
    id: str
    token_id: str
    commenter: str
    ipfs_hash: str
    created_time: int
    block_number: int
    transaction_hash: str


class MonitorControlRequest(BaseModel):
    """Start or stop the indexer."""
    action: Literal["start", "stop"]


class SyncRequest(CamelModel):
    """Catch-up request; omit from_block to resume from the watermark."""
    from_block: Optional[int] = Field(default=None, ge=0)


class DirectEventRequest(CamelModel):
    """Out-of-band event for process_event_directly."""
    type: str = Field(description="Event name, e.g. StoryCreated or tipSent")
    data: Dict[str, Any]
    block_number: int = Field(ge=0)
    transaction_hash: str = Field(min_length=3)
    log_index: int = Field(default=0, ge=0)
    timestamp: Optional[int] = Field(default=None, ge=0)
