"""
Analytics derived on demand from the projected tables.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, func, union
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.core.config import settings
from storychain_sync.models.story import Story
from storychain_sync.models.chapter import Chapter
from storychain_sync.models.comment import Comment


logger = structlog.get_logger(__name__)


@dataclass
class AuthorStats:
    address: str
    story_count: int = 0
    chapter_count: int = 0
    total_earnings: int = 0


@dataclass
class ActivityItem:
    type: str
    timestamp: int
    data: Dict[str, Any]


@dataclass
class AnalyticsSnapshot:
    """Point-in-time aggregate view; never persisted."""
    total_stories: int = 0
    total_chapters: int = 0
    total_comments: int = 0
    total_authors: int = 0
    total_likes: int = 0
    total_tips: int = 0
    most_liked_story_id: Optional[str] = None
    most_forked_story_id: Optional[str] = None
    top_authors: List[AuthorStats] = field(default_factory=list)
    recent_activity: List[ActivityItem] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalStories": self.total_stories,
            "totalChapters": self.total_chapters,
            "totalComments": self.total_comments,
            "totalAuthors": self.total_authors,
            "totalLikes": self.total_likes,
            "totalTips": str(self.total_tips),
            "mostLikedStoryId": self.most_liked_story_id,
            "mostForkedStoryId": self.most_forked_story_id,
            "topAuthors": [
                {
                    "address": author.address,
                    "storyCount": author.story_count,
                    "chapterCount": author.chapter_count,
                    "totalEarnings": str(author.total_earnings),
                }
                for author in self.top_authors
            ],
            "recentActivity": [
                {"type": item.type, "timestamp": item.timestamp, "data": item.data}
                for item in self.recent_activity
            ],
            "generatedAt": self.generated_at.isoformat(),
        }


class AnalyticsService:
    """Computes the analytics snapshot with aggregate queries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="analytics_service")

    async def calculate(
        self,
        top_n: Optional[int] = None,
        recent_limit: Optional[int] = None,
    ) -> AnalyticsSnapshot:
        top_n = top_n or settings.analytics_top_authors
        recent_limit = recent_limit or settings.analytics_recent_activity

        snapshot = AnalyticsSnapshot()

        snapshot.total_stories = await self._count(Story)
        snapshot.total_chapters = await self._count(Chapter)
        snapshot.total_comments = await self._count(Comment)

        authors = union(select(Story.author), select(Chapter.author)).subquery()
        snapshot.total_authors = int(
            await self.db.scalar(select(func.count()).select_from(authors)) or 0
        )

        snapshot.total_likes = (
            int(await self.db.scalar(select(func.sum(Story.likes))) or 0)
            + int(await self.db.scalar(select(func.sum(Chapter.likes))) or 0)
        )
        snapshot.total_tips = (
            int(await self.db.scalar(select(func.sum(Story.total_tips))) or 0)
            + int(await self.db.scalar(select(func.sum(Chapter.total_tips))) or 0)
        )

        snapshot.most_liked_story_id = await self.db.scalar(
            select(Story.id)
            .order_by(Story.likes.desc(), Story.fork_count.desc(), Story.id.asc())
            .limit(1)
        )
        snapshot.most_forked_story_id = await self.db.scalar(
            select(Story.id)
            .order_by(Story.fork_count.desc(), Story.likes.desc(), Story.id.asc())
            .limit(1)
        )

        snapshot.top_authors = await self._top_authors(top_n)
        snapshot.recent_activity = await self._recent_activity(recent_limit)

        self.logger.debug(
            "Analytics calculated",
            stories=snapshot.total_stories,
            chapters=snapshot.total_chapters,
            authors=snapshot.total_authors
        )
        return snapshot

    async def _count(self, model) -> int:
        return int(await self.db.scalar(select(func.count()).select_from(model)) or 0)

    async def _top_authors(self, top_n: int) -> List[AuthorStats]:
        """Authors ranked by tips received on their stories and chapters."""
        authors: Dict[str, AuthorStats] = {}

        story_rows = await self.db.execute(
            select(Story.author, func.count(), func.sum(Story.total_tips)).group_by(Story.author)
        )
        for address, count, earnings in story_rows:
            stats = authors.setdefault(address, AuthorStats(address=address))
            stats.story_count += int(count)
            stats.total_earnings += int(earnings or 0)

        chapter_rows = await self.db.execute(
            select(Chapter.author, func.count(), func.sum(Chapter.total_tips)).group_by(Chapter.author)
        )
        for address, count, earnings in chapter_rows:
            stats = authors.setdefault(address, AuthorStats(address=address))
            stats.chapter_count += int(count)
            stats.total_earnings += int(earnings or 0)

        ranked = sorted(authors.values(), key=lambda stats: (-stats.total_earnings, stats.address))
        return ranked[:top_n]

    async def _recent_activity(self, limit: int) -> List[ActivityItem]:
        """Newest story and chapter creations, newest first."""
        items: List[ActivityItem] = []

        stories = await self.db.execute(
            select(Story.id, Story.author, Story.created_time)
            .order_by(Story.created_time.desc())
            .limit(limit)
        )
        for story_id, author, created_time in stories:
            items.append(ActivityItem(
                type="StoryCreated",
                timestamp=created_time,
                data={"storyId": story_id, "author": author},
            ))

        chapters = await self.db.execute(
            select(Chapter.id, Chapter.story_id, Chapter.author, Chapter.created_time)
            .order_by(Chapter.created_time.desc())
            .limit(limit)
        )
        for chapter_id, story_id, author, created_time in chapters:
            items.append(ActivityItem(
                type="ChapterCreated",
                timestamp=created_time,
                data={"chapterId": chapter_id, "storyId": story_id, "author": author},
            ))

        items.sort(key=lambda item: item.timestamp, reverse=True)
        return items[:limit]
