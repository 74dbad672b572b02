"""
Change Feed Endpoints.

Downstream consumers (urgency scoring, initiative generation) read
unprocessed change events and acknowledge them.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from care_sync.api.dependencies import get_member_store
from care_sync.core.interfaces.member_store import MemberStore

router = APIRouter()
logger = logging.getLogger(__name__)


class ChangeEventResponse(BaseModel):
    """One change event."""
    id: uuid.UUID
    person_id: uuid.UUID
    change_type: str
    old_value: Any = None
    new_value: Any = None
    urgency_score: int
    detected_at: datetime
    processed_at: Optional[datetime] = None
    ai_analysis: Optional[Dict[str, Any]] = None


class MarkProcessedRequest(BaseModel):
    """Optional acknowledgement payload."""
    processed_at: Optional[datetime] = None


@router.get("/changes/unprocessed", response_model=List[ChangeEventResponse])
async def list_unprocessed_changes(
    tenant_id: Optional[uuid.UUID] = Query(default=None, description="Restrict to one organization"),
    limit: int = Query(default=100, ge=1, le=1000),
    store: MemberStore = Depends(get_member_store),
) -> List[ChangeEventResponse]:
    """Lists change events not yet processed, oldest first."""
    events = await store.list_unprocessed_changes(tenant_id=tenant_id, limit=limit)
    return [ChangeEventResponse.model_validate(event, from_attributes=True) for event in events]


@router.post("/changes/{event_id}/processed", status_code=status.HTTP_204_NO_CONTENT)
async def mark_change_processed(
    event_id: uuid.UUID,
    body: Optional[MarkProcessedRequest] = None,
    store: MemberStore = Depends(get_member_store),
) -> None:
    """Marks a change event as processed."""
    processed_at = body.processed_at if body else None
    if not await store.mark_change_processed(event_id, processed_at):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Change event {event_id} not found")
    logger.debug(f"Change event {event_id} marked processed")
