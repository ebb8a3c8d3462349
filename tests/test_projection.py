"""
Tests for applying typed events to the store.
"""

from dataclasses import replace

import pytest
from sqlalchemy import func, select

from storychain_sync.core.database import get_async_session
from storychain_sync.indexer.core.types import ApplyOutcome
from storychain_sync.models import AppliedEvent, Chapter, Comment, Story
from storychain_sync.services.event_parser import EventParser

from tests.helpers import (
    ONE_ETHER,
    chapter_created,
    chapter_forked,
    chapter_liked,
    comment_added,
    story_created,
    story_liked,
    tip_sent,
)


parser = EventParser()


def decoded(raw_log):
    return parser.decode(raw_log)


async def apply(projection, *raw_logs):
    async with get_async_session() as db:
        return await projection.apply_batch(db, [decoded(log) for log in raw_logs])


async def get(model, key):
    async with get_async_session() as db:
        return await db.get(model, key)


async def count(model):
    async with get_async_session() as db:
        return await db.scalar(select(func.count()).select_from(model))


async def test_story_created_twice_leaves_one_row(database, projection):
    log = story_created(1, 100, ipfs_hash="Qm1")

    assert await apply(projection, log) == [ApplyOutcome.APPLIED]
    assert await apply(projection, log) == [ApplyOutcome.DUPLICATE]

    assert await count(Story) == 1
    story = await get(Story, "1")
    assert story.ipfs_hash == "Qm1"
    assert story.total_tips == 0
    assert projection.stats.stories_created == 1
    assert projection.stats.duplicates == 1


async def test_tip_applied_twice_counts_once(database, projection):
    await apply(projection, story_created(1, 100), chapter_created(1, 10, 0, 101))
    tip = tip_sent(1, 10, ONE_ETHER, 102)

    assert await apply(projection, tip) == [ApplyOutcome.APPLIED]
    assert await apply(projection, tip) == [ApplyOutcome.DUPLICATE]

    story = await get(Story, "1")
    chapter = await get(Chapter, "10")
    assert story.total_tips == ONE_ETHER
    assert story.total_tip_count == 1
    assert chapter.total_tips == ONE_ETHER
    assert chapter.total_tip_count == 1
    assert await count(AppliedEvent) == 2


async def test_distinct_tips_accumulate(database, projection):
    await apply(projection, story_created(1, 100), chapter_created(1, 10, 0, 101))

    await apply(
        projection,
        tip_sent(1, 10, ONE_ETHER, 102, log_index=0),
        tip_sent(1, 10, 3 * ONE_ETHER, 102, log_index=1),
    )

    story = await get(Story, "1")
    assert story.total_tips == 4 * ONE_ETHER
    assert story.total_tip_count == 2


async def test_tip_before_chapter_does_not_create_rows(database, projection):
    await apply(projection, story_created(1, 100))
    tip = tip_sent(1, 10, ONE_ETHER, 101)

    outcomes = await apply(projection, tip)

    # Story credit lands, chapter credit has no target yet
    assert outcomes == [ApplyOutcome.APPLIED]
    assert await get(Chapter, "10") is None
    assert await count(Chapter) == 0


async def test_replayed_tip_credits_chapter_created_later(database, projection):
    tip = tip_sent(1, 10, ONE_ETHER, 101)
    await apply(projection, story_created(1, 100), tip)

    await apply(projection, chapter_created(1, 10, 0, 102))
    assert await apply(projection, tip) == [ApplyOutcome.APPLIED]
    assert await apply(projection, tip) == [ApplyOutcome.DUPLICATE]

    story = await get(Story, "1")
    chapter = await get(Chapter, "10")
    assert story.total_tips == ONE_ETHER
    assert chapter.total_tips == ONE_ETHER


async def test_tip_for_unknown_targets_is_missing(database, projection):
    assert await apply(projection, tip_sent(9, 90, ONE_ETHER, 101)) == [ApplyOutcome.MISSING_TARGET]
    assert await count(AppliedEvent) == 0
    assert projection.stats.missing_targets == 1


async def test_chapter_numbers_follow_parents(database, projection):
    await apply(
        projection,
        story_created(1, 100),
        chapter_created(1, 10, 0, 101),
        chapter_created(1, 11, 10, 102),
        chapter_created(1, 12, 11, 103),
        chapter_created(1, 13, 99, 104),
    )

    assert (await get(Chapter, "10")).chapter_number == 1
    assert (await get(Chapter, "11")).chapter_number == 2
    assert (await get(Chapter, "12")).chapter_number == 3
    # Unknown parent counts as a root
    assert (await get(Chapter, "13")).chapter_number == 1


async def test_contract_chapter_number_wins(database, projection):
    event = replace(decoded(chapter_created(1, 10, 0, 101)), chapter_number=4, fork_fee=5 * ONE_ETHER)

    async with get_async_session() as db:
        assert await projection.apply(db, event) == ApplyOutcome.APPLIED

    chapter = await get(Chapter, "10")
    assert chapter.chapter_number == 4
    assert chapter.fork_fee == 5 * ONE_ETHER


async def test_fork_increments_parent_and_story_once(database, projection):
    await apply(projection, story_created(1, 100), chapter_created(1, 10, 0, 101))
    fork = chapter_forked(1, 11, 10, 102)

    assert await apply(projection, fork) == [ApplyOutcome.APPLIED]
    assert await apply(projection, fork) == [ApplyOutcome.DUPLICATE]

    assert (await get(Chapter, "10")).fork_count == 1
    assert (await get(Story, "1")).fork_count == 1
    forked = await get(Chapter, "11")
    assert forked.parent_id == "10"
    assert forked.chapter_number == 2
    assert projection.stats.chapters_forked == 1


async def test_story_likes_follow_chain_order_not_arrival(database, projection):
    await apply(projection, story_created(1, 100))

    later = story_liked(1, 2, 105)
    earlier = story_liked(1, 5, 104)

    assert await apply(projection, later) == [ApplyOutcome.APPLIED]
    assert await apply(projection, earlier) == [ApplyOutcome.STALE]

    assert (await get(Story, "1")).likes == 2


async def test_likes_within_one_block_use_log_index(database, projection):
    await apply(projection, story_created(1, 100), chapter_created(1, 10, 0, 101))

    # Batch order is reversed; the engine sorts by position
    await apply(
        projection,
        chapter_liked(10, 9, 110, log_index=4),
        chapter_liked(10, 3, 110, log_index=1),
    )

    chapter = await get(Chapter, "10")
    assert chapter.likes == 9
    assert (chapter.likes_block, chapter.likes_log_index) == (110, 4)


async def test_like_for_unknown_story_is_missing(database, projection):
    assert await apply(projection, story_liked(42, 1, 100)) == [ApplyOutcome.MISSING_TARGET]


async def test_comment_added_once(database, projection):
    comment = comment_added(10, 120, log_index=2)

    assert await apply(projection, comment) == [ApplyOutcome.APPLIED]
    assert await apply(projection, comment) == [ApplyOutcome.DUPLICATE]

    rows = await count(Comment)
    assert rows == 1
    stored = await get(Comment, f"{comment.transaction_hash}-2")
    assert stored.token_id == "10"
    assert stored.ipfs_hash == ""


async def test_stats_track_last_processed_block(database, projection):
    await apply(projection, story_created(1, 100), story_created(2, 130))

    assert projection.stats.events_processed == 2
    assert projection.stats.last_processed_block == 130


async def test_batch_is_atomic(database, projection):
    with pytest.raises(RuntimeError):
        async with get_async_session() as db:
            await projection.apply_batch(db, [decoded(story_created(1, 100))])
            raise RuntimeError("abort")

    assert await count(Story) == 0
