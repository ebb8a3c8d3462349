"""
Indexer control routes: status, start/stop, manual catch-up and direct events.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends

import structlog

from storychain_sync.api.dependencies import get_indexer
from storychain_sync.api.schemas.chain import (
    DirectEventRequest,
    MonitorControlRequest,
    SyncRequest,
)
from storychain_sync.api.schemas.common import SuccessResponse, create_success_response
from storychain_sync.indexer.core.event_indexer import EventIndexer
from storychain_sync.indexer.core.types import IndexerStatus


logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/status",
    response_model=SuccessResponse,
    summary="Indexer Status",
    description="Monitoring state, watermark and processing statistics"
)
async def get_monitor_status(indexer: EventIndexer = Depends(get_indexer)):
    return create_success_response(await indexer.get_status())


@router.post(
    "/control",
    response_model=SuccessResponse,
    summary="Control Indexer",
    description="Start or stop the indexer"
)
async def control_monitor(
    request: MonitorControlRequest,
    indexer: EventIndexer = Depends(get_indexer)
):
    """
    Start or stop the indexer.

    Starting validates the configuration and performs the initial catch-up
    before the call returns. Both actions are no-ops when already in the
    requested state.
    """
    if request.action == "start":
        if indexer.status == IndexerStatus.RUNNING:
            return create_success_response(await indexer.get_status(), "Monitoring already active")
        await indexer.start()
        message = "Monitoring started"
    else:
        await indexer.stop()
        message = "Monitoring stopped"

    logger.info("Indexer control request handled", action=request.action, state=indexer.status.value)
    return create_success_response(await indexer.get_status(), message)


@router.post(
    "/sync",
    response_model=SuccessResponse,
    summary="Catch Up",
    description="Run one catch-up pass from the watermark or an explicit block"
)
async def sync_now(
    request: SyncRequest,
    indexer: EventIndexer = Depends(get_indexer)
):
    await indexer.initialize()
    result = await indexer.sync(request.from_block)

    message = f"Sync skipped: {result.reason}" if result.skipped else "Sync completed"
    return create_success_response(asdict(result), message)


@router.post(
    "/events",
    response_model=SuccessResponse,
    summary="Process Event Directly",
    description="Apply one event supplied by the caller through the projection rules"
)
async def process_event(
    request: DirectEventRequest,
    indexer: EventIndexer = Depends(get_indexer)
):
    outcome = await indexer.process_event_directly(
        request.type,
        request.data,
        request.block_number,
        request.transaction_hash,
        request.log_index,
        request.timestamp,
    )
    return create_success_response({"outcome": outcome.value}, "Event processed")
