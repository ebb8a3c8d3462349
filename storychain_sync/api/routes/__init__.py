"""API routes package."""

from . import data, monitor

__all__ = ["data", "monitor"]
