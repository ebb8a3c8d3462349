"""
Event handlers for tips and comments.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.core.database import dialect_insert
from storychain_sync.models.story import Story
from storychain_sync.models.chapter import Chapter
from storychain_sync.models.comment import Comment
from storychain_sync.models.applied_event import LedgerTarget
from storychain_sync.indexer.core.types import ApplyOutcome, CommentAdded, TipSent

from .base import BaseHandlers, combine_outcomes


class EngagementHandlers(BaseHandlers):
    """
    Handles tip and comment blockchain events.
    """

    service_name = "engagement_handlers"

    async def handle_tip_sent(self, db: AsyncSession, event: TipSent) -> ApplyOutcome:
        """Handle TipSent event: credit the story and the chapter once each."""
        try:
            story_outcome = await self.apply_delta(
                db,
                event,
                LedgerTarget.STORY_TIP,
                update(Story)
                .where(Story.id == event.story_id)
                .values(
                    total_tips=Story.total_tips + event.amount,
                    total_tip_count=Story.total_tip_count + 1,
                ),
            )

            chapter_outcome = await self.apply_delta(
                db,
                event,
                LedgerTarget.CHAPTER_TIP,
                update(Chapter)
                .where(Chapter.id == event.chapter_id)
                .values(
                    total_tips=Chapter.total_tips + event.amount,
                    total_tip_count=Chapter.total_tip_count + 1,
                ),
            )

            outcome = combine_outcomes([story_outcome, chapter_outcome])
            if outcome == ApplyOutcome.APPLIED:
                self.stats.tips_recorded += 1
                self.logger.info(
                    "Tip recorded",
                    story_id=event.story_id,
                    chapter_id=event.chapter_id,
                    amount=str(event.amount),
                    tx_hash=event.transaction_hash
                )
            return outcome

        except Exception as e:
            self.logger.error("Failed to handle TipSent event", error=str(e))
            raise

    async def handle_comment_added(self, db: AsyncSession, event: CommentAdded) -> ApplyOutcome:
        """Handle CommentAdded event."""
        try:
            statement = dialect_insert(db, Comment).values(
                id=event.comment_id,
                token_id=event.chapter_id,
                commenter=event.commenter,
                ipfs_hash=event.ipfs_hash,
                created_time=event.timestamp,
                block_number=event.block_number,
                transaction_hash=event.transaction_hash,
                log_index=event.log_index,
            ).on_conflict_do_nothing(index_elements=["id"])

            result = await db.execute(statement)
            if result.rowcount == 0:
                self.logger.debug("Comment already exists", comment_id=event.comment_id)
                return ApplyOutcome.DUPLICATE

            self.stats.comments_added += 1
            self.logger.info("Comment added", comment_id=event.comment_id, chapter_id=event.chapter_id)
            return ApplyOutcome.APPLIED

        except Exception as e:
            self.logger.error("Failed to handle CommentAdded event", error=str(e))
            raise
