"""
Builders for contract logs and a scripted chain client used across tests.
"""

import asyncio
from typing import Dict, List, Optional

from eth_abi import encode

from storychain_sync.core.exceptions import InvalidRangeError, SourceUnavailableError
from storychain_sync.services.chain_client import ChapterDetails, CommentDetails, RawLog, Subscription
from storychain_sync.services.contract_abi import EVENT_DEFINITIONS, event_topic


CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
BASE_TIMESTAMP = 1_700_000_000
ONE_ETHER = 10 ** 18


def tx_hash(block_number: int, log_index: int = 0) -> str:
    return "0x" + f"{block_number:032x}{log_index:032x}"


def block_time(block_number: int) -> int:
    return BASE_TIMESTAMP + block_number * 12


def make_log(
    event_name: str,
    block_number: int,
    log_index: int = 0,
    transaction_hash: Optional[str] = None,
    timestamp: Optional[int] = None,
    **values,
) -> RawLog:
    """ABI-encode ``values`` the way the contract emits ``event_name``."""
    signature, arguments = EVENT_DEFINITIONS[event_name]
    topics = [event_topic(signature)]
    data_types, data_values = [], []

    for name, abi_type, indexed in arguments:
        if indexed:
            topics.append("0x" + encode([abi_type], [values[name]]).hex())
        else:
            data_types.append(abi_type)
            data_values.append(values[name])

    return RawLog(
        address=CONTRACT,
        topics=tuple(topics),
        data="0x" + encode(data_types, data_values).hex() if data_types else "0x",
        block_number=block_number,
        transaction_hash=transaction_hash or tx_hash(block_number, log_index),
        log_index=log_index,
        timestamp=block_time(block_number) if timestamp is None else timestamp,
    )


def story_created(story_id, block_number, log_index=0, author=ALICE, ipfs_hash="QmStory", **kwargs):
    return make_log(
        "StoryCreated", block_number, log_index,
        storyId=story_id, author=author, ipfsHash=ipfs_hash, **kwargs
    )


def chapter_created(story_id, chapter_id, parent_id, block_number, log_index=0, author=ALICE,
                    ipfs_hash="QmChapter", **kwargs):
    return make_log(
        "ChapterCreated", block_number, log_index,
        storyId=story_id, chapterId=chapter_id, parentId=parent_id,
        author=author, ipfsHash=ipfs_hash, **kwargs
    )


def chapter_forked(story_id, chapter_id, parent_id, block_number, log_index=0, author=BOB,
                   ipfs_hash="QmFork", **kwargs):
    return make_log(
        "ChapterForked", block_number, log_index,
        storyId=story_id, chapterId=chapter_id, parentId=parent_id,
        author=author, ipfsHash=ipfs_hash, **kwargs
    )


def story_liked(story_id, count, block_number, log_index=0, liker=BOB, **kwargs):
    return make_log(
        "StoryLiked", block_number, log_index,
        storyId=story_id, liker=liker, newLikeCount=count, **kwargs
    )


def chapter_liked(chapter_id, count, block_number, log_index=0, liker=BOB, **kwargs):
    return make_log(
        "ChapterLiked", block_number, log_index,
        chapterId=chapter_id, liker=liker, newLikeCount=count, **kwargs
    )


def tip_sent(story_id, chapter_id, amount, block_number, log_index=0, tipper=BOB,
             event_name="tipSent", **kwargs):
    return make_log(
        event_name, block_number, log_index,
        storyId=story_id, chapterId=chapter_id, tipper=tipper, amount=amount, **kwargs
    )


def comment_added(chapter_id, block_number, log_index=0, commenter=BOB, **kwargs):
    return make_log(
        "CommentAdded", block_number, log_index,
        chapterId=chapter_id, commenter=commenter, **kwargs
    )


class FakeChainClient:
    """In-memory stand-in for ChainClient serving scripted logs."""

    def __init__(self, contract_address: Optional[str] = CONTRACT):
        self.raw_contract_address = contract_address
        self.head = 0
        self.logs: List[RawLog] = []
        self.chapters: Dict[str, ChapterDetails] = {}
        self.comments: Dict[str, List[CommentDetails]] = {}
        self.code = b"\x60\x80\x60\x40"
        self.unavailable = False
        self.head_gate: Optional[asyncio.Event] = None
        self.get_logs_calls: List[tuple] = []
        self.on_batch = None
        self.subscriptions: List[Subscription] = []
        self.closed = False

    @property
    def contract_address(self) -> str:
        return self.raw_contract_address

    async def get_health(self) -> bool:
        return not self.unavailable

    async def get_current_height(self) -> int:
        if self.head_gate is not None:
            await self.head_gate.wait()
        if self.unavailable:
            raise SourceUnavailableError("node unreachable")
        return self.head

    async def get_logs(self, from_block: int, to_block: int) -> List[RawLog]:
        if from_block > to_block:
            raise InvalidRangeError(from_block, to_block)
        if self.unavailable:
            raise SourceUnavailableError("node unreachable")
        self.get_logs_calls.append((from_block, to_block))
        return sorted(
            (log for log in self.logs if from_block <= log.block_number <= to_block),
            key=lambda log: log.position,
        )

    async def get_block_timestamp(self, block_number: int) -> int:
        return block_time(block_number)

    async def get_code(self, address: Optional[str] = None) -> bytes:
        if self.unavailable:
            raise SourceUnavailableError("node unreachable")
        return self.code

    async def get_chapter(self, chapter_id: str) -> Optional[ChapterDetails]:
        return self.chapters.get(chapter_id)

    async def get_comment(self, chapter_id: str, index: int) -> Optional[CommentDetails]:
        comments = self.comments.get(chapter_id, [])
        return comments[index] if index < len(comments) else None

    async def get_receipt(self, tx_hash: str):
        return None

    def subscribe(self, on_batch) -> Subscription:
        self.on_batch = on_batch
        task = asyncio.create_task(asyncio.Event().wait())
        subscription = Subscription(task, "fake")
        self.subscriptions.append(subscription)
        return subscription

    async def close(self):
        for subscription in self.subscriptions:
            await subscription.cancel()
        self.closed = True
