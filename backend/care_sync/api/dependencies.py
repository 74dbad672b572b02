"""
FastAPI dependencies shared by the endpoints.

Long-lived services are created in the application lifespan and kept on
app.state, so tests can swap them without touching globals.
"""

from fastapi import Depends, Header, HTTPException, Request, status

from care_sync.core.config import Settings, get_settings
from care_sync.core.interfaces.member_store import MemberStore
from care_sync.services.member_sync import SyncOrchestrator
from care_sync.services.sync_status import SyncStatusTracker


def get_member_store(request: Request) -> MemberStore:
    return request.app.state.member_store


def get_status_tracker(request: Request) -> SyncStatusTracker:
    return request.app.state.sync_status


def get_sync_orchestrator(
    store: MemberStore = Depends(get_member_store),
    tracker: SyncStatusTracker = Depends(get_status_tracker),
    settings: Settings = Depends(get_settings),
) -> SyncOrchestrator:
    return SyncOrchestrator(store=store, settings=settings, status_tracker=tracker)


def verify_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Accepts `Authorization: Bearer <CRON_SECRET>`.

    Without a configured secret only development mode is let through.
    """
    if settings.cron_secret:
        if authorization == f"Bearer {settings.cron_secret}":
            return
    elif settings.app_env == "development":
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
