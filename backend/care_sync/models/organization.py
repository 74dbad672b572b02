"""
Organization model - a tenant of the platform.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from care_sync.db.base import Base, JSONType


class Organization(Base):
    """
    A church (tenant). Members and credentials are scoped to it.

    InChurch credentials are optional; organizations without both halves
    are not synced.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    inchurch_api_key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="InChurch API key (per tenant)",
    )

    inchurch_secret: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="InChurch API secret (per tenant)",
    )

    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        comment="Tenant settings (conflict policy overrides, API URL override...)",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name='{self.name}')>"
