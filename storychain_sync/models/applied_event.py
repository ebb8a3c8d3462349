"""
Applied event ledger - guards delta updates against replay.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, Integer, BigInteger, DateTime, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class LedgerTarget(str, Enum):
    """Which delta of an event a ledger row certifies."""
    STORY_TIP = "story_tip"
    CHAPTER_TIP = "chapter_tip"
    STORY_FORK = "story_fork"
    PARENT_FORK = "parent_fork"


class AppliedEvent(BaseModel):
    """
    One row per (event, target) delta that has been applied.

    An event touching two rows (a tip credits both a story and a chapter)
    gets one row per target, so a target that was missing on the first pass
    can still be credited exactly once on a later re-scan.
    """

    __tablename__ = "applied_events"

    transaction_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    target: Mapped[str] = mapped_column(String(32), primary_key=True)

    event_type: Mapped[str] = mapped_column(String(32))
    block_number: Mapped[int] = mapped_column(BigInteger)

    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_applied_event_block", "block_number"),
    )

    def __repr__(self) -> str:
        return f"<AppliedEvent({self.transaction_hash[:10]}..:{self.log_index}:{self.target})>"
