"""
Event parser service for StoryChain contract events.
Turns raw logs (or loose payloads) into typed, validated event records.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from eth_abi.abi import decode as abi_decode

from storychain_sync.core.exceptions import EventDecodeError
from storychain_sync.services.chain_client import RawLog
from storychain_sync.services.contract_abi import EVENT_DEFINITIONS, EVENT_TOPICS
from storychain_sync.indexer.core.types import (
    ChapterCreated,
    ChapterForked,
    ChapterLiked,
    CommentAdded,
    DecodedEvent,
    DecodeError,
    EventKind,
    StoryCreated,
    StoryLiked,
    TipSent,
)


logger = structlog.get_logger(__name__)

# ABI event name -> projected kind
EVENT_NAME_TO_KIND: Dict[str, EventKind] = {
    "StoryCreated": EventKind.STORY_CREATED,
    "ChapterCreated": EventKind.CHAPTER_CREATED,
    "ChapterForked": EventKind.CHAPTER_FORKED,
    "StoryLiked": EventKind.STORY_LIKED,
    "ChapterLiked": EventKind.CHAPTER_LIKED,
    "tipSent": EventKind.TIP_SENT,
    "TipSent": EventKind.TIP_SENT,
    "CommentAdded": EventKind.COMMENT_ADDED,
}

# Payload fields each kind requires, in contract (camelCase) naming
REQUIRED_FIELDS: Dict[EventKind, List[str]] = {
    EventKind.STORY_CREATED: ["storyId", "author", "ipfsHash"],
    EventKind.CHAPTER_CREATED: ["storyId", "chapterId", "parentId", "author", "ipfsHash"],
    EventKind.CHAPTER_FORKED: ["storyId", "chapterId", "parentId", "author", "ipfsHash"],
    EventKind.STORY_LIKED: ["storyId", "liker", "newLikeCount"],
    EventKind.CHAPTER_LIKED: ["chapterId", "liker", "newLikeCount"],
    EventKind.TIP_SENT: ["storyId", "chapterId", "tipper", "amount"],
    EventKind.COMMENT_ADDED: ["chapterId", "commenter"],
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class EventParser:
    """
    Parser for StoryChain contract events.

    Handles:
    - topic0 lookup against the known event signatures
    - ABI decoding of indexed topics and the data section
    - Normalization of ids (decimal strings), addresses (lower case)
      and amounts (int)
    """

    def __init__(self):
        """Initialize the event parser."""
        self.logger = logger.bind(service="event_parser")
        self.topics = dict(EVENT_TOPICS)

    def decode(self, raw_log: RawLog) -> Union[DecodedEvent, DecodeError]:
        """
        Decode one raw log.

        Never raises: unknown topics and malformed payloads come back as a
        DecodeError value carrying the reason and the log position.
        """
        def failure(reason: str) -> DecodeError:
            return DecodeError(
                reason=reason,
                block_number=raw_log.block_number,
                transaction_hash=raw_log.transaction_hash,
                log_index=raw_log.log_index,
            )

        if not raw_log.topics:
            return failure("log has no topics")

        event_name = self.topics.get(raw_log.topics[0].lower())
        if event_name is None:
            return failure(f"unknown event topic {raw_log.topics[0]}")

        if raw_log.timestamp is None:
            return failure("log has no block timestamp")

        _, arguments = EVENT_DEFINITIONS[event_name]
        indexed = [(name, abi_type) for name, abi_type, is_indexed in arguments if is_indexed]
        non_indexed = [(name, abi_type) for name, abi_type, is_indexed in arguments if not is_indexed]

        if len(raw_log.topics) != len(indexed) + 1:
            return failure(
                f"{event_name} expects {len(indexed)} indexed topics, got {len(raw_log.topics) - 1}"
            )

        values: Dict[str, Any] = {}
        try:
            for (name, abi_type), topic in zip(indexed, raw_log.topics[1:]):
                values[name] = abi_decode([abi_type], bytes.fromhex(topic.removeprefix("0x")))[0]

            if non_indexed:
                data = bytes.fromhex(raw_log.data.removeprefix("0x"))
                decoded = abi_decode([abi_type for _, abi_type in non_indexed], data)
                values.update(zip((name for name, _ in non_indexed), decoded))
        except Exception as e:
            return failure(f"failed to decode {event_name}: {e}")

        try:
            return self._build_event(
                EVENT_NAME_TO_KIND[event_name],
                values,
                raw_log.block_number,
                raw_log.transaction_hash,
                raw_log.log_index,
                raw_log.timestamp,
            )
        except EventDecodeError as e:
            return failure(e.message)

    def from_payload(
        self,
        kind: Union[EventKind, str],
        payload: Mapping[str, Any],
        block_number: int,
        transaction_hash: str,
        log_index: int,
        timestamp: int,
    ) -> DecodedEvent:
        """
        Build a typed event from a loose mapping.

        Accepts camelCase (contract) or snake_case keys. Raises
        EventDecodeError for unknown kinds or missing fields.
        """
        event_kind = self._resolve_kind(kind)

        values: Dict[str, Any] = {}
        for name in REQUIRED_FIELDS[event_kind]:
            if name in payload:
                values[name] = payload[name]
            elif _snake(name) in payload:
                values[name] = payload[_snake(name)]

        return self._build_event(
            event_kind,
            values,
            int(block_number),
            str(transaction_hash).lower(),
            int(log_index),
            int(timestamp),
        )

    @staticmethod
    def _resolve_kind(kind: Union[EventKind, str]) -> EventKind:
        if isinstance(kind, EventKind):
            return kind
        if kind in EVENT_NAME_TO_KIND:
            return EVENT_NAME_TO_KIND[kind]
        try:
            return EventKind[str(kind).upper()]
        except KeyError:
            raise EventDecodeError(f"Unknown event kind: {kind}", {"kind": str(kind)})

    def _build_event(
        self,
        kind: EventKind,
        values: Mapping[str, Any],
        block_number: int,
        transaction_hash: str,
        log_index: int,
        timestamp: int,
    ) -> DecodedEvent:
        missing = [name for name in REQUIRED_FIELDS[kind] if values.get(name) is None]
        if missing:
            raise EventDecodeError(
                f"{kind.value} is missing fields: {', '.join(missing)}",
                {"kind": kind.value, "missing": missing}
            )

        position = dict(
            block_number=block_number,
            transaction_hash=transaction_hash,
            log_index=log_index,
            timestamp=timestamp,
        )

        try:
            if kind == EventKind.STORY_CREATED:
                return StoryCreated(
                    story_id=_id(values["storyId"]),
                    author=_address(values["author"]),
                    ipfs_hash=str(values["ipfsHash"]),
                    **position,
                )

            if kind in (EventKind.CHAPTER_CREATED, EventKind.CHAPTER_FORKED):
                event_class = ChapterForked if kind == EventKind.CHAPTER_FORKED else ChapterCreated
                return event_class(
                    story_id=_id(values["storyId"]),
                    chapter_id=_id(values["chapterId"]),
                    parent_id=_id(values["parentId"]),
                    author=_address(values["author"]),
                    ipfs_hash=str(values["ipfsHash"]),
                    **position,
                )

            if kind == EventKind.STORY_LIKED:
                return StoryLiked(
                    story_id=_id(values["storyId"]),
                    liker=_address(values["liker"]),
                    new_like_count=int(values["newLikeCount"]),
                    **position,
                )

            if kind == EventKind.CHAPTER_LIKED:
                return ChapterLiked(
                    chapter_id=_id(values["chapterId"]),
                    liker=_address(values["liker"]),
                    new_like_count=int(values["newLikeCount"]),
                    **position,
                )

            if kind == EventKind.TIP_SENT:
                amount = int(values["amount"])
                if amount < 0:
                    raise ValueError("negative tip amount")
                return TipSent(
                    story_id=_id(values["storyId"]),
                    chapter_id=_id(values["chapterId"]),
                    tipper=_address(values["tipper"]),
                    amount=amount,
                    **position,
                )

            return CommentAdded(
                chapter_id=_id(values["chapterId"]),
                commenter=_address(values["commenter"]),
                **position,
            )

        except (TypeError, ValueError) as e:
            raise EventDecodeError(
                f"Invalid {kind.value} payload: {e}",
                {"kind": kind.value}
            )


def _id(value: Any) -> str:
    if isinstance(value, str) and value.startswith("0x"):
        number = int(value, 16)
    else:
        number = int(value)
    if number < 0:
        raise ValueError(f"negative id {value}")
    return str(number)


def _address(value: Any) -> str:
    text = str(value).lower()
    if not text.startswith("0x") or len(text) != 42:
        raise ValueError(f"invalid address {value}")
    return text


# Global parser instance
_parser: Optional[EventParser] = None


def get_event_parser() -> EventParser:
    """Get or create a global event parser instance."""
    global _parser
    if _parser is None:
        _parser = EventParser()
    return _parser
