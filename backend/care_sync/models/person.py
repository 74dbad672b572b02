"""
Person model - the canonical member record of a tenant.
"""

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from care_sync.db.base import Base, JSONType


class Person(Base):
    """
    SQLAlchemy model for canonical members.

    inchurch_member_id links the row to its InChurch record. The pair
    (organization_id, inchurch_member_id) is unique so concurrent tenant
    syncs never write the same row.
    """

    __tablename__ = "people"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    inchurch_member_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="InChurch member id (reconciliation key within the tenant)",
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    marital_status: Mapped[str | None] = mapped_column(String(64), nullable=True)

    address: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Structured address (street, number, city, state, zip_code...)",
    )

    profile_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Last raw InChurch payload",
    )

    sync_source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    local_edited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Local edit kept over InChurch by newest_wins",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("organization_id", "inchurch_member_id", name="uq_people_org_inchurch_member"),
        Index("ix_people_org_updated", "organization_id", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Person(id={self.id}, name='{self.name}', inchurch_member_id={self.inchurch_member_id})>"
