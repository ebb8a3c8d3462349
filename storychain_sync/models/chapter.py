"""
Chapter model - projection of ChapterCreated / ChapterForked / ChapterLiked / tip events.
"""

from sqlalchemy import String, Integer, BigInteger, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, Uint256


ROOT_PARENT_ID = "0"


class Chapter(BaseModel, TimestampMixin):
    """Chapter row; ``parent_id`` forms a forest per story with "0" roots."""

    __tablename__ = "chapters"

    id: Mapped[str] = mapped_column(
        String(80),
        primary_key=True,
        comment="On-chain chapter id"
    )

    story_id: Mapped[str] = mapped_column(
        String(80),
        comment="Owning story id"
    )

    parent_id: Mapped[str] = mapped_column(
        String(80),
        default=ROOT_PARENT_ID,
        comment="Parent chapter id, '0' for a root chapter"
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

    likes: Mapped[int] = mapped_column(Integer, default=0)

    fork_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="Number of chapters forked from this one"
    )

    chapter_number: Mapped[int] = mapped_column(
        Integer,
        default=1,
        comment="Depth of the chapter in its story (root = 1)"
    )

    fork_fee: Mapped[int] = mapped_column(
        Uint256,
        default=0,
        comment="Fee to fork this chapter in wei"
    )

    total_tips: Mapped[int] = mapped_column(
        Uint256,
        default=0,
        comment="Accumulated tips in wei"
    )

    total_tip_count: Mapped[int] = mapped_column(Integer, default=0)

    likes_block: Mapped[int] = mapped_column(BigInteger, default=-1)
    likes_log_index: Mapped[int] = mapped_column(Integer, default=-1)

    block_number: Mapped[int] = mapped_column(BigInteger)
    transaction_hash: Mapped[str] = mapped_column(String(66))

    __table_args__ = (
        Index("idx_chapter_story", "story_id"),
        Index("idx_chapter_parent", "parent_id"),
        Index("idx_chapter_author", "author"),
        Index("idx_chapter_created_time", "created_time"),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_id == ROOT_PARENT_ID

    def __repr__(self) -> str:
        return f"<Chapter(id={self.id}, story_id={self.story_id}, parent_id={self.parent_id})>"
