"""
Read-side queries over the projected store.
"""

from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from storychain_sync.models.story import Story
from storychain_sync.models.chapter import Chapter
from storychain_sync.models.comment import Comment
from storychain_sync.indexer.watermark import WatermarkStore


logger = structlog.get_logger(__name__)


def story_to_dict(story: Story) -> Dict[str, Any]:
    return {
        "id": story.id,
        "author": story.author,
        "ipfs_hash": story.ipfs_hash,
        "created_time": story.created_time,
        "likes": story.likes,
        "fork_count": story.fork_count,
        "total_tips": str(story.total_tips),
        "total_tip_count": story.total_tip_count,
        "block_number": story.block_number,
        "transaction_hash": story.transaction_hash,
    }


def chapter_to_dict(chapter: Chapter) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "story_id": chapter.story_id,
        "parent_id": chapter.parent_id,
        "author": chapter.author,
        "ipfs_hash": chapter.ipfs_hash,
        "created_time": chapter.created_time,
        "likes": chapter.likes,
        "fork_count": chapter.fork_count,
        "chapter_number": chapter.chapter_number,
        "fork_fee": str(chapter.fork_fee),
        "total_tips": str(chapter.total_tips),
        "total_tip_count": chapter.total_tip_count,
        "block_number": chapter.block_number,
        "transaction_hash": chapter.transaction_hash,
    }


def comment_to_dict(comment: Comment) -> Dict[str, Any]:
    return {
        "id": comment.id,
        "token_id": comment.token_id,
        "commenter": comment.commenter,
        "ipfs_hash": comment.ipfs_hash,
        "created_time": comment.created_time,
        "block_number": comment.block_number,
        "transaction_hash": comment.transaction_hash,
    }


class ReadStore:
    """
    Query service for stories, chapters, comments and sync metadata.

    Amounts are returned as decimal strings.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="read_store")

    async def _page(self, query, offset: int, limit: int) -> Tuple[List[Any], int]:
        total = await self.db.scalar(
            select(func.count()).select_from(query.order_by(None).subquery())
        )
        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all()), int(total or 0)

    async def get_stories(
        self,
        author: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Stories, newest first."""
        query = select(Story).order_by(Story.created_time.desc(), Story.id.desc())
        if author:
            query = query.where(Story.author == author.lower())

        stories, total = await self._page(query, offset, limit)
        return [story_to_dict(story) for story in stories], total

    async def get_story(self, story_id: str) -> Optional[Dict[str, Any]]:
        story = await self.db.get(Story, story_id)
        return story_to_dict(story) if story else None

    async def get_chapters(
        self,
        story_id: Optional[str] = None,
        author: Optional[str] = None,
        parent_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Chapters, newest first, optionally filtered."""
        query = select(Chapter).order_by(Chapter.created_time.desc(), Chapter.id.desc())
        if story_id:
            query = query.where(Chapter.story_id == story_id)
        if author:
            query = query.where(Chapter.author == author.lower())
        if parent_id is not None:
            query = query.where(Chapter.parent_id == parent_id)

        chapters, total = await self._page(query, offset, limit)
        return [chapter_to_dict(chapter) for chapter in chapters], total

    async def get_chapter(self, chapter_id: str) -> Optional[Dict[str, Any]]:
        chapter = await self.db.get(Chapter, chapter_id)
        return chapter_to_dict(chapter) if chapter else None

    async def get_comments(
        self,
        token_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Comments of one chapter in posting order, or all comments newest first.
        """
        if token_id:
            query = (
                select(Comment)
                .where(Comment.token_id == token_id)
                .order_by(Comment.created_time.asc(), Comment.block_number.asc(), Comment.log_index.asc())
            )
        else:
            query = select(Comment).order_by(Comment.created_time.desc(), Comment.id.desc())

        comments, total = await self._page(query, offset, limit)
        return [comment_to_dict(comment) for comment in comments], total

    async def get_last_update(self) -> Optional[Dict[str, Any]]:
        """Watermark as block and time, or None before the first sync."""
        watermark = await WatermarkStore().read(self.db)
        if watermark is None:
            return None
        return {
            "block": watermark.block_number,
            "time": watermark.updated_at.isoformat() if watermark.updated_at else None,
        }
