"""
Shared fixtures: an in-memory SQLite store and a scripted chain client.
"""

import pytest

from storychain_sync.core.database import init_database, close_database, DatabaseManager
from storychain_sync.indexer.core.event_indexer import EventIndexer
from storychain_sync.indexer.core.types import ProcessingStats
from storychain_sync.indexer.projection import ProjectionEngine

from tests.helpers import FakeChainClient


TEST_DB_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def database():
    """Fresh schema per test."""
    await init_database(TEST_DB_URL)
    await DatabaseManager.create_tables()
    yield
    await close_database()


@pytest.fixture
def chain():
    return FakeChainClient()


@pytest.fixture
def projection():
    return ProjectionEngine(ProcessingStats())


@pytest.fixture
async def indexer(database, chain):
    indexer = EventIndexer(chain_client=chain)
    indexer.retry_delay = 0
    indexer.max_retries = 2
    yield indexer
    await indexer.dispose()
