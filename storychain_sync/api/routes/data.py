"""
Read-only routes over the projected stories, chapters and comments.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from storychain_sync.api.dependencies import get_database, get_pagination_params, get_read_store
from storychain_sync.api.schemas.chain import ChapterResponse, CommentResponse, StoryResponse
from storychain_sync.api.schemas.common import (
    PaginatedResponse,
    PaginationParams,
    SuccessResponse,
    create_paginated_response,
    create_success_response,
)
from storychain_sync.core.exceptions import ChapterNotFoundError, StoryNotFoundError
from storychain_sync.services.analytics_service import AnalyticsService
from storychain_sync.services.read_store import ReadStore


logger = structlog.get_logger(__name__)

router = APIRouter()


def _camel(schema, row):
    return schema.model_validate(row).model_dump(by_alias=True)


@router.get(
    "/stories",
    response_model=PaginatedResponse,
    summary="List Stories",
    description="Stories ordered newest first"
)
async def list_stories(
    author: Optional[str] = Query(None, description="Filter by author address"),
    pagination: PaginationParams = Depends(get_pagination_params),
    store: ReadStore = Depends(get_read_store)
):
    rows, total = await store.get_stories(author, pagination.offset, pagination.limit)
    return create_paginated_response(
        [_camel(StoryResponse, row) for row in rows],
        total,
        pagination.limit,
        pagination.offset,
    )


@router.get(
    "/stories/{story_id}",
    response_model=SuccessResponse,
    summary="Get Story"
)
async def get_story(story_id: str, store: ReadStore = Depends(get_read_store)):
    row = await store.get_story(story_id)
    if row is None:
        raise StoryNotFoundError(story_id)
    return create_success_response(_camel(StoryResponse, row))


@router.get(
    "/chapters",
    response_model=PaginatedResponse,
    summary="List Chapters",
    description="Chapters ordered newest first, optionally filtered by story, author or parent"
)
async def list_chapters(
    story_id: Optional[str] = Query(None, alias="storyId"),
    author: Optional[str] = Query(None),
    parent_id: Optional[str] = Query(None, alias="parentId"),
    pagination: PaginationParams = Depends(get_pagination_params),
    store: ReadStore = Depends(get_read_store)
):
    rows, total = await store.get_chapters(
        story_id, author, parent_id, pagination.offset, pagination.limit
    )
    return create_paginated_response(
        [_camel(ChapterResponse, row) for row in rows],
        total,
        pagination.limit,
        pagination.offset,
    )


@router.get(
    "/chapters/{chapter_id}",
    response_model=SuccessResponse,
    summary="Get Chapter"
)
async def get_chapter(chapter_id: str, store: ReadStore = Depends(get_read_store)):
    row = await store.get_chapter(chapter_id)
    if row is None:
        raise ChapterNotFoundError(chapter_id)
    return create_success_response(_camel(ChapterResponse, row))


@router.get(
    "/comments",
    response_model=PaginatedResponse,
    summary="List Comments",
    description="Comments of one chapter in posting order, or all comments newest first"
)
async def list_comments(
    token_id: Optional[str] = Query(None, alias="tokenId"),
    pagination: PaginationParams = Depends(get_pagination_params),
    store: ReadStore = Depends(get_read_store)
):
    rows, total = await store.get_comments(token_id, pagination.offset, pagination.limit)
    return create_paginated_response(
        [_camel(CommentResponse, row) for row in rows],
        total,
        pagination.limit,
        pagination.offset,
    )


@router.get(
    "/analytics",
    response_model=SuccessResponse,
    summary="Analytics",
    description="Aggregate statistics computed from the current projection"
)
async def get_analytics(
    top: Optional[int] = Query(None, ge=1, le=100, description="Number of top authors"),
    db: AsyncSession = Depends(get_database)
):
    snapshot = await AnalyticsService(db).calculate(top_n=top)
    return create_success_response(snapshot.to_dict())


@router.get(
    "/last-update",
    response_model=SuccessResponse,
    summary="Last Update",
    description="Highest fully synced block and when it was recorded"
)
async def get_last_update(store: ReadStore = Depends(get_read_store)):
    return create_success_response(await store.get_last_update())
