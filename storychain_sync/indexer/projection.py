"""
Projection engine: applies typed events to the relational store.
"""

from typing import Callable, Dict, Iterable, List

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .core.types import ApplyOutcome, DecodedEvent, EventKind, ProcessingStats
from .handlers.story_handlers import StoryHandlers
from .handlers.chapter_handlers import ChapterHandlers
from .handlers.engagement_handlers import EngagementHandlers


logger = structlog.get_logger(__name__)


class ProjectionEngine:
    """
    Idempotent projection of contract events into current state.

    Every handler runs inside the caller's session; committing (together
    with the watermark) is the caller's job.
    """

    def __init__(self, stats: ProcessingStats):
        self.stats = stats
        self.logger = logger.bind(service="projection_engine")

        self._story_handlers = StoryHandlers(stats)
        self._chapter_handlers = ChapterHandlers(stats)
        self._engagement_handlers = EngagementHandlers(stats)

        self._event_handlers: Dict[EventKind, Callable] = {}
        self._setup_event_handlers()

    def _setup_event_handlers(self):
        """Setup event kind to handler mappings."""
        self._event_handlers = {
            # Story events
            EventKind.STORY_CREATED: self._story_handlers.handle_story_created,
            EventKind.STORY_LIKED: self._story_handlers.handle_story_liked,

            # Chapter events
            EventKind.CHAPTER_CREATED: self._chapter_handlers.handle_chapter_created,
            EventKind.CHAPTER_FORKED: self._chapter_handlers.handle_chapter_forked,
            EventKind.CHAPTER_LIKED: self._chapter_handlers.handle_chapter_liked,

            # Engagement events
            EventKind.TIP_SENT: self._engagement_handlers.handle_tip_sent,
            EventKind.COMMENT_ADDED: self._engagement_handlers.handle_comment_added,
        }

    async def apply(self, db: AsyncSession, event: DecodedEvent) -> ApplyOutcome:
        """Apply one event."""
        handler = self._event_handlers[event.kind]
        outcome = await handler(db, event)

        self.stats.events_processed += 1
        if outcome == ApplyOutcome.DUPLICATE:
            self.stats.duplicates += 1
        elif outcome == ApplyOutcome.MISSING_TARGET:
            self.stats.missing_targets += 1

        if self.stats.last_processed_block is None or event.block_number > self.stats.last_processed_block:
            self.stats.last_processed_block = event.block_number

        return outcome

    async def apply_batch(self, db: AsyncSession, events: Iterable[DecodedEvent]) -> List[ApplyOutcome]:
        """Apply events in ascending (block_number, log_index) order."""
        ordered = sorted(events, key=lambda event: event.position)
        outcomes = []
        for event in ordered:
            outcomes.append(await self.apply(db, event))

        if ordered:
            self.logger.debug(
                "Batch applied",
                events=len(ordered),
                first_block=ordered[0].block_number,
                last_block=ordered[-1].block_number,
                applied=outcomes.count(ApplyOutcome.APPLIED)
            )
        return outcomes
