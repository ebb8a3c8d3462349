"""
Custom exception classes for the application.
Provides structured error handling across all modules.
"""

from typing import Any, Optional, Dict


class StoryChainSyncException(Exception):
    """Base exception class for the StoryChain sync service."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(StoryChainSyncException):
    """Raised when configuration is missing or does not match the chain."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class StoreError(StoryChainSyncException):
    """Raised when a store transaction fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_ERROR", details)


class ChainError(StoryChainSyncException):
    """Raised when a chain node interaction fails."""

    def __init__(
        self,
        message: str,
        code: str = "CHAIN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code, details)


class SourceUnavailableError(ChainError):
    """Raised when the chain node cannot be reached or times out."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SOURCE_UNAVAILABLE", details)


class InvalidRangeError(ChainError):
    """Raised when a block range is inverted."""

    def __init__(self, from_block: int, to_block: int):
        super().__init__(
            f"Invalid block range: {from_block} > {to_block}",
            "INVALID_RANGE",
            {"from_block": from_block, "to_block": to_block}
        )


class EventDecodeError(StoryChainSyncException):
    """Raised when an event payload cannot be turned into a typed event."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DECODE_ERROR", details)


class NotFoundError(StoryChainSyncException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class StoryNotFoundError(NotFoundError):
    """Raised when a story is not found."""

    def __init__(self, story_id: str):
        super().__init__(
            f"Story not found: {story_id}",
            {"story_id": story_id}
        )


class ChapterNotFoundError(NotFoundError):
    """Raised when a chapter is not found."""

    def __init__(self, chapter_id: str):
        super().__init__(
            f"Chapter not found: {chapter_id}",
            {"chapter_id": chapter_id}
        )
