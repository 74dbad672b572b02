"""
Sync Status API Endpoint.
Provides real-time sync progress monitoring.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from care_sync.api.dependencies import get_status_tracker
from care_sync.services.sync_status import SyncStatusTracker

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncStatusResponse(BaseModel):
    """Sync status response."""
    run_id: str | None
    phase: str
    started_at: str | None
    current_step: str
    progress: Dict[str, Any]
    tenants: Dict[str, Dict[str, Any]]
    errors: list
    completed_at: str | None
    duration_seconds: float
    result_status: str | None
    is_running: bool


@router.get("/sync-status", response_model=SyncStatusResponse)
async def get_sync_status(
    tracker: SyncStatusTracker = Depends(get_status_tracker),
) -> SyncStatusResponse:
    """
    Get current sync status.

    Poll every few seconds during a run to follow tenant and page progress.
    """
    status = tracker.get_status()

    return SyncStatusResponse(
        run_id=status["run_id"],
        phase=status["phase"],
        started_at=status["started_at"],
        current_step=status["current_step"],
        progress=status["progress"],
        tenants=status["tenants"],
        errors=status["errors"],
        completed_at=status["completed_at"],
        duration_seconds=status["duration_seconds"],
        result_status=status["result_status"],
        is_running=tracker.is_running()
    )
