"""
Event handlers for chapter-related events.
"""

from typing import Union

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.core.database import dialect_insert
from storychain_sync.models.chapter import Chapter, ROOT_PARENT_ID
from storychain_sync.models.story import Story
from storychain_sync.models.applied_event import LedgerTarget
from storychain_sync.indexer.core.types import (
    ApplyOutcome,
    ChapterCreated,
    ChapterForked,
    ChapterLiked,
)

from .base import BaseHandlers, combine_outcomes


class ChapterHandlers(BaseHandlers):
    """
    Handles chapter-related blockchain events.
    """

    service_name = "chapter_handlers"

    async def resolve_chapter_number(self, db: AsyncSession, event: Union[ChapterCreated, ChapterForked]) -> int:
        """Contract value when known, else parent's number + 1 (root and orphan = 1)."""
        if event.chapter_number:
            return event.chapter_number
        if event.parent_id == ROOT_PARENT_ID:
            return 1

        parent_number = await db.scalar(
            select(Chapter.chapter_number).where(Chapter.id == event.parent_id)
        )
        return parent_number + 1 if parent_number is not None else 1

    async def _insert_chapter(self, db: AsyncSession, event: Union[ChapterCreated, ChapterForked]) -> ApplyOutcome:
        chapter_number = await self.resolve_chapter_number(db, event)

        statement = dialect_insert(db, Chapter).values(
            id=event.chapter_id,
            story_id=event.story_id,
            parent_id=event.parent_id,
            author=event.author,
            ipfs_hash=event.ipfs_hash,
            created_time=event.timestamp,
            likes=0,
            fork_count=0,
            chapter_number=chapter_number,
            fork_fee=event.fork_fee,
            total_tips=0,
            total_tip_count=0,
            likes_block=-1,
            likes_log_index=-1,
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
        ).on_conflict_do_nothing(index_elements=["id"])

        result = await db.execute(statement)
        if result.rowcount == 0:
            self.logger.debug("Chapter already exists", chapter_id=event.chapter_id)
            return ApplyOutcome.DUPLICATE

        self.logger.info(
            "Chapter created",
            chapter_id=event.chapter_id,
            story_id=event.story_id,
            parent_id=event.parent_id,
            chapter_number=chapter_number
        )
        return ApplyOutcome.APPLIED

    async def handle_chapter_created(self, db: AsyncSession, event: ChapterCreated) -> ApplyOutcome:
        """Handle ChapterCreated event."""
        try:
            outcome = await self._insert_chapter(db, event)
            if outcome == ApplyOutcome.APPLIED:
                self.stats.chapters_created += 1
            return outcome

        except Exception as e:
            self.logger.error("Failed to handle ChapterCreated event", error=str(e))
            raise

    async def handle_chapter_forked(self, db: AsyncSession, event: ChapterForked) -> ApplyOutcome:
        """Handle ChapterForked event: new chapter plus fork counters on parent and story."""
        try:
            outcomes = [await self._insert_chapter(db, event)]

            outcomes.append(await self.apply_delta(
                db,
                event,
                LedgerTarget.PARENT_FORK,
                update(Chapter)
                .where(Chapter.id == event.parent_id)
                .values(fork_count=Chapter.fork_count + 1),
            ))

            outcomes.append(await self.apply_delta(
                db,
                event,
                LedgerTarget.STORY_FORK,
                update(Story)
                .where(Story.id == event.story_id)
                .values(fork_count=Story.fork_count + 1),
            ))

            outcome = combine_outcomes(outcomes)
            if outcome == ApplyOutcome.APPLIED:
                self.stats.chapters_forked += 1
            return outcome

        except Exception as e:
            self.logger.error("Failed to handle ChapterForked event", error=str(e))
            raise

    async def handle_chapter_liked(self, db: AsyncSession, event: ChapterLiked) -> ApplyOutcome:
        """Handle ChapterLiked event: absolute overwrite, later chain position wins."""
        try:
            result = await db.execute(
                update(Chapter)
                .where(Chapter.id == event.chapter_id)
                .where(
                    or_(
                        Chapter.likes_block < event.block_number,
                        and_(
                            Chapter.likes_block == event.block_number,
                            Chapter.likes_log_index < event.log_index,
                        ),
                    )
                )
                .values(
                    likes=event.new_like_count,
                    likes_block=event.block_number,
                    likes_log_index=event.log_index,
                )
            )

            if result.rowcount:
                self.stats.likes_updated += 1
                self.logger.debug("Chapter likes updated", chapter_id=event.chapter_id, likes=event.new_like_count)
                return ApplyOutcome.APPLIED

            exists = await db.scalar(select(Chapter.id).where(Chapter.id == event.chapter_id))
            if exists is None:
                self.logger.debug("Like for unknown chapter, dropping", chapter_id=event.chapter_id)
                return ApplyOutcome.MISSING_TARGET
            return ApplyOutcome.STALE

        except Exception as e:
            self.logger.error("Failed to handle ChapterLiked event", error=str(e))
            raise
