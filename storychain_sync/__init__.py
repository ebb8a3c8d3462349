"""
StoryChain Sync

Keeps a relational projection of the StoryChain contract in step with the chain:
- Catch-up and live tailing of contract events
- Idempotent projection of stories, chapters, likes, tips and comments
- Persistent sync watermark for crash-safe resume
- REST API for projected data and indexer control
"""

__version__ = "0.1.0"
