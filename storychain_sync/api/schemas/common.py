"""
Common Pydantic schemas for API responses and requests.
Provides base classes and common data structures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIResponse(BaseModel):
    """Base API response model."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class SuccessResponse(APIResponse):
    """Success response model."""
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    """Error response model."""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints."""
    limit: int = Field(default=50, ge=1, le=1000, description="Number of items per page")
    offset: int = Field(default=0, ge=0, description="Number of items to skip")


class PaginatedResponse(SuccessResponse):
    """Paginated response model."""
    data: List[Any]
    pagination: Dict[str, Any] = Field(
        description="Pagination metadata",
        examples=[{
            "total": 100,
            "limit": 50,
            "offset": 0,
            "has_next": True,
            "has_previous": False
        }]
    )


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = "0.1.0"
    services: Dict[str, str] = Field(
        default_factory=lambda: {
            "database": "healthy",
            "chain": "healthy",
        }
    )


def create_success_response(data: Any = None, message: str = None) -> SuccessResponse:
    """Create a success response."""
    return SuccessResponse(data=data, message=message)


def create_error_response(
    message: str,
    error_code: str = None,
    details: Dict[str, Any] = None
) -> ErrorResponse:
    """Create an error response."""
    return ErrorResponse(
        message=message,
        error_code=error_code,
        details=details
    )


def create_paginated_response(
    data: List[Any],
    total: int,
    limit: int,
    offset: int
) -> PaginatedResponse:
    """Create a paginated response."""
    has_next = offset + limit < total
    has_previous = offset > 0

    return PaginatedResponse(
        data=data,
        pagination={
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_next": has_next,
            "has_previous": has_previous,
        }
    )
