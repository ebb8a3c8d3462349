"""
Comment model - one row per CommentAdded event.
"""

from sqlalchemy import String, Integer, BigInteger, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Comment(BaseModel, TimestampMixin):
    """Comment keyed by ``"{transaction_hash}-{log_index}"``."""

    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)

    token_id: Mapped[str] = mapped_column(
        String(80),
        comment="Chapter id the comment belongs to"
    )

    commenter: Mapped[str] = mapped_column(String(42))

    ipfs_hash: Mapped[str] = mapped_column(
        String(255),
        default="",
        comment="Content reference, empty until resolved from the contract"
    )

    created_time: Mapped[int] = mapped_column(BigInteger)
    block_number: Mapped[int] = mapped_column(BigInteger)
    transaction_hash: Mapped[str] = mapped_column(String(66))
    log_index: Mapped[int] = mapped_column(Integer)

    __table_args__ = (
        Index("idx_comment_token", "token_id"),
        Index("idx_comment_created_time", "created_time"),
    )

    @staticmethod
    def make_id(transaction_hash: str, log_index: int) -> str:
        return f"{transaction_hash}-{log_index}"

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, token_id={self.token_id})>"
