"""
SyncConflict model - conflict reports awaiting human review.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from care_sync.db.base import Base, JSONType


class SyncConflict(Base):
    """Both sides of a flagged change set plus the recommended resolutions."""

    __tablename__ = "sync_conflicts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    person_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("people.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    inchurch_member_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)

    local_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    remote_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    conflicts: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncConflict(id={self.id}, person_id={self.person_id}, reason='{self.reason}')>"
