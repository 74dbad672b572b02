"""
Health Endpoint for monitoring.
"""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text

from care_sync.api.dependencies import get_status_tracker
from care_sync.core.config import Settings, get_settings
from care_sync.services.sync_status import SyncStatusTracker

router = APIRouter()
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    environment: str
    database_connected: bool
    sync_running: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: Settings = Depends(get_settings),
    tracker: SyncStatusTracker = Depends(get_status_tracker),
) -> HealthResponse:
    """
    Health check with a database round trip.

    Returns:
        Health status
    """
    database_connected = True
    try:
        async with request.app.state.session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        database_connected = False

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        environment=settings.app_env,
        database_connected=database_connected,
        sync_running=tracker.is_running(),
    )
