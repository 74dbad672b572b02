"""
PersonChange model - the append-only change event stream.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from care_sync.db.base import Base, JSONType


class PersonChange(Base):
    """
    One committed change of a person, consumed downstream by urgency
    scoring and initiative generation.

    Rows are never updated except for processed_at / ai_analysis, which
    belong to the downstream consumer.
    """

    __tablename__ = "people_changes"

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

    change_type: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="person.created | person.updated.<field> | person.conflict | person.deleted",
    )

    old_value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    new_value: Mapped[Any | None] = mapped_column(JSONType, nullable=True)

    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    urgency_score: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_people_changes_unprocessed", "processed_at", "detected_at"),
    )

    def __repr__(self) -> str:
        return f"<PersonChange(id={self.id}, change_type='{self.change_type}', person_id={self.person_id})>"
