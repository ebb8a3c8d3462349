"""
Event handlers for story-related events.
"""

from sqlalchemy import select, update, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.core.database import dialect_insert
from storychain_sync.models.story import Story
from storychain_sync.indexer.core.types import ApplyOutcome, StoryCreated, StoryLiked

from .base import BaseHandlers


class StoryHandlers(BaseHandlers):
    """
    Handles story-related blockchain events.
    """

    service_name = "story_handlers"

    async def handle_story_created(self, db: AsyncSession, event: StoryCreated) -> ApplyOutcome:
        """Handle StoryCreated event."""
        try:
            statement = dialect_insert(db, Story).values(
                id=event.story_id,
                author=event.author,
                ipfs_hash=event.ipfs_hash,
                created_time=event.timestamp,
                likes=0,
                fork_count=0,
                total_tips=0,
                total_tip_count=0,
                likes_block=-1,
                likes_log_index=-1,
                block_number=event.block_number,
                transaction_hash=event.transaction_hash,
            ).on_conflict_do_nothing(index_elements=["id"])

            result = await db.execute(statement)
            if result.rowcount == 0:
                self.logger.debug("Story already exists", story_id=event.story_id)
                return ApplyOutcome.DUPLICATE

            self.stats.stories_created += 1
            self.logger.info("Story created", story_id=event.story_id, author=event.author)
            return ApplyOutcome.APPLIED

        except Exception as e:
            self.logger.error("Failed to handle StoryCreated event", error=str(e))
            raise

    async def handle_story_liked(self, db: AsyncSession, event: StoryLiked) -> ApplyOutcome:
        """Handle StoryLiked event: absolute overwrite, later chain position wins."""
        try:
            result = await db.execute(
                update(Story)
                .where(Story.id == event.story_id)
                .where(
                    or_(
                        Story.likes_block < event.block_number,
                        and_(
                            Story.likes_block == event.block_number,
                            Story.likes_log_index < event.log_index,
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
                self.logger.debug("Story likes updated", story_id=event.story_id, likes=event.new_like_count)
                return ApplyOutcome.APPLIED

            exists = await db.scalar(select(Story.id).where(Story.id == event.story_id))
            if exists is None:
                self.logger.debug("Like for unknown story, dropping", story_id=event.story_id)
                return ApplyOutcome.MISSING_TARGET
            return ApplyOutcome.STALE

        except Exception as e:
            self.logger.error("Failed to handle StoryLiked event", error=str(e))
            raise
