"""
API dependencies for FastAPI endpoints.
Provides reusable dependency functions for data access and the app-owned indexer.
"""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from storychain_sync.core.database import get_async_session
from storychain_sync.api.schemas.common import PaginationParams
from storychain_sync.indexer.core.event_indexer import EventIndexer
from storychain_sync.services.read_store import ReadStore


logger = structlog.get_logger(__name__)


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_async_session() as session:
        yield session


async def get_read_store(db: AsyncSession = Depends(get_database)) -> ReadStore:
    """Read store bound to the request's session."""
    return ReadStore(db)


def get_indexer(request: Request) -> EventIndexer:
    """The indexer owned by the running application."""
    indexer = getattr(request.app.state, "indexer", None)
    if indexer is None:
        logger.error("Indexer requested before application startup")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "INDEXER_UNAVAILABLE",
                "message": "Indexer is not initialized"
            }
        )
    return indexer


async def get_pagination_params(
    limit: int = Query(50, ge=1, le=1000, description="Number of items per page"),
    offset: int = Query(0, ge=0, description="Number of items to skip")
) -> PaginationParams:
    """Get pagination parameters."""
    return PaginationParams(limit=limit, offset=offset)
