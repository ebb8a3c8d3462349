"""
Main FastAPI application for the StoryChain sync service.
Serves the projected data and controls the indexer.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

import structlog

from storychain_sync.core.config import settings
from storychain_sync.core.database import init_database, close_database, check_database_connection
from storychain_sync.core.exceptions import StoryChainSyncException
from storychain_sync.core.logging import setup_logging
from storychain_sync.api.middleware import add_middleware
from storychain_sync.api.schemas.common import HealthCheckResponse, SuccessResponse
from storychain_sync.api.routes import data, monitor
from storychain_sync.indexer.core.event_indexer import EventIndexer


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting StoryChain sync API server")

    await init_database()

    indexer = EventIndexer()
    app.state.indexer = indexer

    if settings.auto_start_monitor:
        try:
            await indexer.start()
            logger.info("Indexer started with the server")
        except StoryChainSyncException as e:
            logger.error("Failed to start indexer", error=e.message, code=e.code)

    yield

    logger.info("Shutting down StoryChain sync API server")

    await indexer.dispose()
    app.state.indexer = None
    await close_database()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging()

    app = FastAPI(
        title="StoryChain Sync API",
        description="""
        Read API and control surface for the StoryChain projection.

        * **Stories, chapters, comments** - projected from contract events
        * **Analytics** - aggregates computed on demand
        * **Monitor** - start/stop the indexer and trigger catch-up
        """,
        version=settings.app_version,
        lifespan=lifespan,
    )

    add_middleware(app)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check database and chain connectivity"
    )
    async def health_check():
        database_ok = await check_database_connection()

        indexer = getattr(app.state, "indexer", None)
        chain_ok = False
        if indexer is not None and indexer.chain_client is not None:
            chain_ok = await indexer.chain_client.get_health()

        services = {
            "database": "healthy" if database_ok else "unhealthy",
            "chain": "healthy" if chain_ok else "unavailable",
        }

        if not database_ok:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "services": services}
            )

        return HealthCheckResponse(
            status="healthy" if chain_ok else "degraded",
            version=settings.app_version,
            services=services,
        )

    @app.get(
        "/",
        response_model=SuccessResponse,
        tags=["System"],
        summary="API Information"
    )
    async def root():
        return SuccessResponse(
            message=f"StoryChain Sync API v{settings.app_version}",
            data={
                "version": settings.app_version,
                "environment": settings.environment,
                "docs_url": "/docs",
            }
        )

    app.include_router(
        data.router,
        prefix=f"{settings.api_v1_prefix}/data",
        tags=["Data"]
    )

    app.include_router(
        monitor.router,
        prefix=f"{settings.api_v1_prefix}/monitor",
        tags=["Monitor"]
    )

    logger.info("FastAPI application created", version=settings.app_version)
    return app


app = create_app()
