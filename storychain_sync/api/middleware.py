"""
Custom middleware for the FastAPI application.
Provides request logging and mapping of service errors to HTTP responses.
"""

import time
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

import structlog

from storychain_sync.core.config import settings
from storychain_sync.api.schemas.common import create_error_response
from storychain_sync.core.exceptions import (
    StoryChainSyncException,
    ConfigurationError,
    EventDecodeError,
    InvalidRangeError,
    NotFoundError,
    SourceUnavailableError,
    StoreError,
)


logger = structlog.get_logger(__name__)


ERROR_STATUS_CODES = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidRangeError, status.HTTP_400_BAD_REQUEST),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (EventDecodeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SourceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(error: StoryChainSyncException) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details."""
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            method=request.method,
            url=str(request.url),
            client_ip=request.client.host if request.client else None,
        )

        response = await call_next(request)
        process_time = time.perf_counter() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            "Request completed",
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            process_time=process_time,
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Middleware for centralized error handling."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Handle service errors and return consistent error responses."""
        try:
            return await call_next(request)

        except StoryChainSyncException as e:
            status_code = status_code_for(e)
            log = logger.error if status_code >= 500 else logger.warning
            log("Request failed", url=str(request.url), code=e.code, error=e.message)

            return JSONResponse(
                status_code=status_code,
                content=create_error_response(e.message, e.code, e.details).model_dump(mode="json")
            )


def add_middleware(app: FastAPI) -> None:
    """Add all middleware to the FastAPI app."""

    # CORS middleware (first to handle preflight requests)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Custom middleware (order matters - last added is executed first)
    app.add_middleware(ErrorHandlerMiddleware)

    # Logging (should be last to capture all processing)
    app.add_middleware(LoggingMiddleware)

    logger.info("Middleware configured successfully")
