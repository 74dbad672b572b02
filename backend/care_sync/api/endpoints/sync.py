"""
Cron Sync Endpoint.
Triggers the daily InChurch polling sync.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic_core import to_jsonable_python

from care_sync.api.dependencies import (
    get_status_tracker,
    get_sync_orchestrator,
    verify_cron_secret,
)
from care_sync.services.member_sync import SyncOrchestrator
from care_sync.services.sync_status import SyncStatusTracker

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/cron/sync", dependencies=[Depends(verify_cron_secret)])
async def run_daily_sync(
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
    tracker: SyncStatusTracker = Depends(get_status_tracker),
) -> Dict[str, Any]:
    """
    Runs the daily sync and returns the run result.

    The run is awaited so the scheduler sees the final status. A second
    trigger while a run is in progress is rejected.
    """
    if tracker.is_running():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A sync run is already in progress")

    logger.info("⏰ Cron: starting daily sync job")
    result = await orchestrator.run_daily_sync()

    return {
        "success": result.status.value != "failed",
        "execution_time_ms": result.execution_time_ms,
        "result": to_jsonable_python(result.to_dict()),
    }
