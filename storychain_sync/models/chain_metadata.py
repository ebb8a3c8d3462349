"""
Chain metadata - the single-row sync watermark.
"""

from datetime import datetime

from sqlalchemy import Integer, BigInteger, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


WATERMARK_ROW_ID = 1


class ChainMetadata(BaseModel, TimestampMixin):
    """Highest block whose events have been fully applied."""

    __tablename__ = "chain_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=WATERMARK_ROW_ID)

    last_update_block: Mapped[int] = mapped_column(BigInteger)

    last_update_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(f"id = {WATERMARK_ROW_ID}", name="ck_chain_metadata_single_row"),
    )

    def __repr__(self) -> str:
        return f"<ChainMetadata(block={self.last_update_block})>"
