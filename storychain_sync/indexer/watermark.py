"""
Watermark store: the highest block whose events are fully applied.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select, case, func
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.core.database import dialect_insert, get_async_session
from storychain_sync.models.chain_metadata import ChainMetadata, WATERMARK_ROW_ID

from .core.types import Watermark


logger = structlog.get_logger(__name__)


class WatermarkStore:
    """Single-row watermark persisted in ``chain_metadata``."""

    def __init__(self):
        self.logger = logger.bind(service="watermark_store")

    async def read(self, db: Optional[AsyncSession] = None) -> Optional[Watermark]:
        """Current watermark, or None before the first successful batch."""
        if db is None:
            async with get_async_session() as session:
                return await self.read(session)

        row = (await db.execute(
            select(ChainMetadata.last_update_block, ChainMetadata.last_update_time)
            .where(ChainMetadata.id == WATERMARK_ROW_ID)
        )).first()

        if row is None:
            return None
        return Watermark(block_number=row.last_update_block, updated_at=row.last_update_time)

    async def write(
        self,
        db: AsyncSession,
        block_number: int,
        updated_at: Optional[datetime] = None,
    ) -> None:
        """
        Upsert the watermark inside the caller's transaction.

        The stored block never decreases; writing an older block only
        refreshes the update time.
        """
        updated_at = updated_at or datetime.now(timezone.utc)

        statement = dialect_insert(db, ChainMetadata).values(
            id=WATERMARK_ROW_ID,
            last_update_block=block_number,
            last_update_time=updated_at,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "last_update_block": case(
                    (statement.excluded.last_update_block > ChainMetadata.last_update_block,
                     statement.excluded.last_update_block),
                    else_=ChainMetadata.last_update_block,
                ),
                "last_update_time": statement.excluded.last_update_time,
                "updated_at": func.now(),
            },
        )

        await db.execute(statement)
        self.logger.debug("Watermark written", block=block_number)
