"""
Tests for decoding contract logs into typed events.
"""

from dataclasses import replace

import pytest

from storychain_sync.core.exceptions import EventDecodeError
from storychain_sync.indexer.core.types import (
    ChapterCreated,
    ChapterForked,
    CommentAdded,
    DecodeError,
    EventKind,
    StoryCreated,
    StoryLiked,
    TipSent,
)
from storychain_sync.services.event_parser import EventParser

from tests.helpers import (
    ALICE,
    BOB,
    ONE_ETHER,
    block_time,
    chapter_created,
    chapter_forked,
    comment_added,
    story_created,
    story_liked,
    tip_sent,
)


@pytest.fixture
def parser():
    return EventParser()


def test_decode_story_created(parser):
    event = parser.decode(story_created(1, 100, author=ALICE, ipfs_hash="Qm1"))

    assert isinstance(event, StoryCreated)
    assert event.story_id == "1"
    assert event.author == ALICE
    assert event.ipfs_hash == "Qm1"
    assert event.block_number == 100
    assert event.timestamp == block_time(100)


def test_decode_chapter_created_reads_parent_from_data(parser):
    event = parser.decode(chapter_created(1, 10, 0, 101, log_index=3))

    assert isinstance(event, ChapterCreated)
    assert (event.story_id, event.chapter_id, event.parent_id) == ("1", "10", "0")
    assert event.log_index == 3
    assert event.chapter_number is None


def test_decode_chapter_forked(parser):
    event = parser.decode(chapter_forked(1, 11, 10, 102))

    assert isinstance(event, ChapterForked)
    assert event.kind == EventKind.CHAPTER_FORKED
    assert event.parent_id == "10"
    assert event.author == BOB


def test_decode_story_liked(parser):
    event = parser.decode(story_liked(1, 7, 103))

    assert isinstance(event, StoryLiked)
    assert event.new_like_count == 7


@pytest.mark.parametrize("event_name", ["tipSent", "TipSent"])
def test_decode_tip_under_either_spelling(parser, event_name):
    event = parser.decode(tip_sent(1, 10, ONE_ETHER, 102, event_name=event_name))

    assert isinstance(event, TipSent)
    assert event.amount == ONE_ETHER
    assert event.kind == EventKind.TIP_SENT


def test_decode_comment_added_without_data(parser):
    event = parser.decode(comment_added(10, 104, log_index=1))

    assert isinstance(event, CommentAdded)
    assert event.chapter_id == "10"
    assert event.ipfs_hash == ""
    assert event.comment_id == f"{event.transaction_hash}-1"


def test_decode_large_uint256_amount(parser):
    amount = 2 ** 200
    event = parser.decode(tip_sent(1, 10, amount, 102))

    assert event.amount == amount


def test_unknown_topic_is_a_decode_error(parser):
    log = story_created(1, 100)
    unknown = replace(log, topics=("0x" + "ff" * 32,) + log.topics[1:])

    result = parser.decode(unknown)

    assert isinstance(result, DecodeError)
    assert "unknown event topic" in result.reason
    assert result.block_number == 100
    assert result.transaction_hash == log.transaction_hash


def test_missing_topics_is_a_decode_error(parser):
    result = parser.decode(replace(story_created(1, 100), topics=()))

    assert isinstance(result, DecodeError)


def test_wrong_indexed_topic_count_is_a_decode_error(parser):
    log = story_created(1, 100)
    result = parser.decode(replace(log, topics=log.topics[:2]))

    assert isinstance(result, DecodeError)
    assert "indexed topics" in result.reason


def test_truncated_data_is_a_decode_error(parser):
    log = story_created(1, 100)
    result = parser.decode(replace(log, data=log.data[:20]))

    assert isinstance(result, DecodeError)
    assert "failed to decode" in result.reason


def test_missing_timestamp_is_a_decode_error(parser):
    result = parser.decode(replace(story_created(1, 100), timestamp=None))

    assert isinstance(result, DecodeError)
    assert "timestamp" in result.reason


def test_from_payload_accepts_camel_case(parser):
    event = parser.from_payload(
        "StoryCreated",
        {"storyId": 5, "author": ALICE, "ipfsHash": "Qm5"},
        block_number=200,
        transaction_hash="0xABC",
        log_index=0,
        timestamp=1,
    )

    assert isinstance(event, StoryCreated)
    assert event.story_id == "5"
    assert event.transaction_hash == "0xabc"


def test_from_payload_accepts_snake_case_and_hex_ids(parser):
    event = parser.from_payload(
        EventKind.TIP_SENT,
        {"story_id": "0x1", "chapter_id": "0xa", "tipper": BOB, "amount": str(ONE_ETHER)},
        block_number=200,
        transaction_hash="0xabc",
        log_index=2,
        timestamp=1,
    )

    assert isinstance(event, TipSent)
    assert (event.story_id, event.chapter_id) == ("1", "10")
    assert event.amount == ONE_ETHER


def test_from_payload_accepts_enum_member_names(parser):
    event = parser.from_payload(
        "COMMENT_ADDED", {"chapterId": 10, "commenter": BOB}, 1, "0xabc", 0, 1
    )

    assert isinstance(event, CommentAdded)


def test_from_payload_missing_field(parser):
    with pytest.raises(EventDecodeError) as exc_info:
        parser.from_payload("StoryCreated", {"storyId": 1, "author": ALICE}, 1, "0xabc", 0, 1)

    assert exc_info.value.details["missing"] == ["ipfsHash"]


def test_from_payload_unknown_kind(parser):
    with pytest.raises(EventDecodeError):
        parser.from_payload("StoryBurned", {}, 1, "0xabc", 0, 1)


@pytest.mark.parametrize("payload", [
    {"storyId": 1, "chapterId": 10, "tipper": "not-an-address", "amount": 1},
    {"storyId": -1, "chapterId": 10, "tipper": BOB, "amount": 1},
    {"storyId": 1, "chapterId": 10, "tipper": BOB, "amount": -5},
    {"storyId": "one", "chapterId": 10, "tipper": BOB, "amount": 1},
])
def test_from_payload_rejects_invalid_values(parser, payload):
    with pytest.raises(EventDecodeError):
        parser.from_payload("TipSent", payload, 1, "0xabc", 0, 1)
