"""
Sync API Router
Manual sync trigger, sync status and pending queue diagnostics
"""

import logging
from fastapi import APIRouter, Depends

from shelfsync.api.dependencies import verify_api_key, get_orchestrator
from shelfsync.api.schemas import (
    PendingListResponse, PendingOperationSchema, SyncErrorSchema,
    SyncResultResponse, SyncStatusResponse
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=SyncResultResponse)
async def trigger_sync(
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    """
    Run one sync cycle.

    A cycle that is already in flight yields 409; any other failure is
    reported in the body with success=false.
    """
    logger.info("Manual sync triggered")
    result = await orchestrator.trigger_sync()
    return SyncResultResponse.from_result(result)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    status = await orchestrator.get_status()
    return SyncStatusResponse(
        owner_id=status['owner_id'],
        last_sync_at=status['last_sync_at'],
        is_syncing=status['is_syncing'],
        pending_count=status['pending_count'],
        recent_errors=[SyncErrorSchema.from_record(error) for error in status['recent_errors']]
    )


@router.get("/pending", response_model=PendingListResponse)
async def list_pending_operations(
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    records = await orchestrator.queue.list_pending()
    return PendingListResponse(
        count=len(records),
        operations=[PendingOperationSchema.from_record(record) for record in records]
    )
