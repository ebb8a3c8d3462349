"""
Monitoring components for event indexing.
"""

from .realtime_monitor import RealtimeMonitor

__all__ = [
    "RealtimeMonitor",
]
