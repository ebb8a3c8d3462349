"""
Out-of-band maintenance over the projected store.
"""

from typing import Dict, Optional

import structlog
from sqlalchemy import select, update

from storychain_sync.core.database import get_async_session
from storychain_sync.core.exceptions import SourceUnavailableError
from storychain_sync.models.chapter import Chapter, ROOT_PARENT_ID
from storychain_sync.models.comment import Comment
from storychain_sync.services.chain_client import ChainClient, find_comment_hash, get_chain_client


logger = structlog.get_logger(__name__)


def compute_chapter_numbers(parents: Dict[str, str]) -> Dict[str, int]:
    """
    Depth of every chapter in its parent forest (root = 1).

    Chapters whose parent is unknown count as roots. A parent cycle is cut
    at the first chapter revisited, which gets 1.
    """
    numbers: Dict[str, int] = {}

    for chapter_id in parents:
        path = []
        on_path = set()
        current = chapter_id

        while current not in numbers:
            parent = parents.get(current)
            if current in on_path:
                # Cycle: break it at this node
                numbers[current] = 1
                break
            path.append(current)
            on_path.add(current)
            if parent is None or parent == ROOT_PARENT_ID or parent not in parents:
                numbers[current] = 1
                path.pop()
                break
            current = parent

        for node in reversed(path):
            if node not in numbers:
                numbers[node] = numbers[parents[node]] + 1

    return numbers


class RepairService:
    """
    Maintenance passes that reconcile projected rows with the contract.
    """

    def __init__(self, chain_client: Optional[ChainClient] = None):
        self.chain_client = chain_client
        self.logger = logger.bind(service="repair_service")

    async def _client(self):
        if self.chain_client is None:
            self.chain_client = await get_chain_client()
        return self.chain_client

    async def fix_chapter_numbers(self) -> int:
        """Recompute chapter_number from the parent forest; returns rows changed."""
        async with get_async_session() as db:
            rows = (await db.execute(
                select(Chapter.id, Chapter.parent_id, Chapter.chapter_number)
            )).all()

            parents = {row.id: row.parent_id for row in rows}
            current = {row.id: row.chapter_number for row in rows}
            numbers = compute_chapter_numbers(parents)

            updated = 0
            for chapter_id, number in numbers.items():
                if current[chapter_id] != number:
                    await db.execute(
                        update(Chapter).where(Chapter.id == chapter_id).values(chapter_number=number)
                    )
                    updated += 1

        self.logger.info("Chapter numbers fixed", chapters=len(rows), updated=updated)
        return updated

    async def update_missing_comment_hashes(self, limit: int = 50) -> int:
        """Fill empty comment content references from the contract."""
        client = await self._client()

        async with get_async_session() as db:
            comments = (await db.execute(
                select(Comment)
                .where(Comment.ipfs_hash == "")
                .order_by(Comment.created_time.desc())
                .limit(limit)
            )).scalars().all()

            updated = 0
            for comment in comments:
                try:
                    ipfs_hash = await find_comment_hash(
                        client, comment.token_id, comment.commenter, comment.created_time
                    )
                except SourceUnavailableError as e:
                    self.logger.warning("Comment lookup failed", comment_id=comment.id, error=e.message)
                    continue

                if ipfs_hash:
                    await db.execute(
                        update(Comment).where(Comment.id == comment.id).values(ipfs_hash=ipfs_hash)
                    )
                    updated += 1

        self.logger.info("Comment hashes repaired", candidates=len(comments), updated=updated)
        return updated

    async def sync_chapter_details(self, limit: int = 50) -> int:
        """Refresh fork_fee from getChapter for chapters still at zero."""
        client = await self._client()

        async with get_async_session() as db:
            chapter_ids = (await db.execute(
                select(Chapter.id)
                .where(Chapter.fork_fee == 0)
                .order_by(Chapter.created_time.asc())
                .limit(limit)
            )).scalars().all()

            updated = 0
            for chapter_id in chapter_ids:
                try:
                    details = await client.get_chapter(chapter_id)
                except SourceUnavailableError as e:
                    self.logger.warning("Chapter lookup failed", chapter_id=chapter_id, error=e.message)
                    continue

                if details is not None and details.fork_fee:
                    await db.execute(
                        update(Chapter).where(Chapter.id == chapter_id).values(fork_fee=details.fork_fee)
                    )
                    updated += 1

        self.logger.info("Chapter details synced", candidates=len(chapter_ids), updated=updated)
        return updated
