"""
Story model - projection of StoryCreated / StoryLiked / tip events.
"""

from sqlalchemy import String, Integer, BigInteger, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, Uint256


class Story(BaseModel, TimestampMixin):
    """Story row keyed by the on-chain story id."""

    __tablename__ = "stories"

    # Decimal string of the uint256 id
    id: Mapped[str] = mapped_column(
        String(80),
        primary_key=True,
        comment="On-chain story id"
    )

    author: Mapped[str] = mapped_column(
        String(42),
        comment="Lower-cased author address"
    )

    ipfs_hash: Mapped[str] = mapped_column(
        String(255),
        default="",
        comment="Content reference"
    )

    created_time: Mapped[int] = mapped_column(
        BigInteger,
        comment="Block timestamp (unix seconds)"
    )

    # Counters
    likes: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Absolute like count from the latest StoryLiked event"
    )

    fork_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of forks across the story's chapters"
    )

    total_tips: Mapped[int] = mapped_column(
        Uint256,
        default=0,
        comment="Accumulated tips in wei"
    )

    total_tip_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of tips received"
    )

    # Position of the like event that last set `likes`
    likes_block: Mapped[int] = mapped_column(BigInteger, default=-1)
    likes_log_index: Mapped[int] = mapped_column(Integer, default=-1)

    # Origin
    block_number: Mapped[int] = mapped_column(
        BigInteger,
        comment="Block of the StoryCreated event"
    )

    transaction_hash: Mapped[str] = mapped_column(
        String(66),
        comment="Transaction of the StoryCreated event"
    )

    __table_args__ = (
        Index("idx_story_author", "author"),
        Index("idx_story_created_time", "created_time"),
        Index("idx_story_likes", "likes"),
    )

    def __repr__(self) -> str:
        return f"<Story(id={self.id}, author={self.author}, likes={self.likes})>"
