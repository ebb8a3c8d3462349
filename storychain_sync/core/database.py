"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)
from sqlalchemy.pool import StaticPool

from .config import settings, DatabaseConfig
from .exceptions import StoreError
from .logging import get_logger

logger = get_logger(__name__)

# Global engine and session maker
async_engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(database_url: Optional[str] = None) -> None:
    """Initialize database connections and session makers."""
    global async_engine, async_session_maker

    logger.info("Initializing database connections")

    url = DatabaseConfig.get_database_url(async_driver=True, url=database_url)
    engine_config = DatabaseConfig.get_engine_config(url)

    # In-memory SQLite must share one connection across sessions
    if url.startswith("sqlite") and (":memory:" in url or url.endswith("://")):
        engine_config.update(
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    async_engine = create_async_engine(url, **engine_config, echo=settings.debug)

    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    logger.info("Database connections initialized")


async def close_database() -> None:
    """Close database connections."""
    global async_engine, async_session_maker

    logger.info("Closing database connections")

    if async_engine:
        await async_engine.dispose()

    async_engine = None
    async_session_maker = None

    logger.info("Database connections closed")


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session with automatic cleanup.

    Commits when the block exits normally, rolls back on any exception.

    Usage:
        async with get_async_session() as session:
            # Use session here
            pass
    """
    if not async_session_maker:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


class DatabaseManager:
    """Database manager for administrative operations."""

    @staticmethod
    async def create_tables() -> None:
        """Create all tables in the database."""
        from storychain_sync.models.base import Base

        if not async_engine:
            raise RuntimeError("Database not initialized")

        logger.info("Creating database tables")
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    @staticmethod
    async def drop_tables() -> None:
        """Drop all tables in the database."""
        from storychain_sync.models.base import Base

        if not async_engine:
            raise RuntimeError("Database not initialized")

        logger.warning("Dropping all database tables")
        async with async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database tables dropped")

    @staticmethod
    async def health_check() -> bool:
        """Check database connectivity."""
        try:
            async with get_async_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False


async def check_database_connection() -> bool:
    """Check that the configured database answers a trivial query."""
    return await DatabaseManager.health_check()


def dialect_insert(db: AsyncSession, model):
    """INSERT construct with ON CONFLICT support for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise StoreError(f"Unsupported database dialect: {dialect}", {"dialect": dialect})
