"""
Event handlers for blockchain events.
"""

from .story_handlers import StoryHandlers
from .chapter_handlers import ChapterHandlers
from .engagement_handlers import EngagementHandlers

__all__ = [
    "StoryHandlers",
    "ChapterHandlers",
    "EngagementHandlers",
]
