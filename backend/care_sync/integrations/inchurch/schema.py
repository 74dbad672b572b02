"""
InChurch API payload models.

Wire payloads use camelCase; the models expose snake_case attributes and
accept either form on input.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class InChurchModel(BaseModel):
    """Base for every InChurch payload model."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Address(InChurchModel):
    """Structured postal address. Every component is optional."""

    street: Optional[str] = None
    number: Optional[str] = None
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

    def is_empty(self) -> bool:
        """True when no component carries a non-blank value."""
        return all(
            value is None or not str(value).strip()
            for value in self.model_dump().values()
        )


class RemoteMember(InChurchModel):
    """A member as returned by the InChurch API for one polling cycle."""

    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    marital_status: Optional[str] = None
    address: Optional[Address] = None
    groups: List[str] = Field(default_factory=list)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RemoteGroup(InChurchModel):
    """A member group (cell, ministry...) in InChurch."""

    id: str
    name: str
    description: Optional[str] = None
    leader_id: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(InChurchModel):
    """Pagination block of a list response."""

    page: int = 1
    limit: int = 0
    total: int = 0
    has_more: bool = False


class ApiErrorBody(InChurchModel):
    """Error block of an unsuccessful envelope."""

    code: str = "HTTP_ERROR"
    message: str = "Unknown InChurch error"
    details: Any = None


class ApiEnvelope(InChurchModel):
    """Response envelope shared by every InChurch endpoint."""

    success: bool
    data: Any = None
    error: Optional[ApiErrorBody] = None
    pagination: Optional[Pagination] = None


class MemberFilters(InChurchModel):
    """Query filters for the member listing endpoint."""

    updated_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None
    status: Optional[Literal["active", "inactive", "pending", "all"]] = None
    group_ids: List[str] = Field(default_factory=list)
    search: Optional[str] = None

    def to_query_params(self) -> List[tuple]:
        """
        Builds query params in wire format.

        Lists are emitted as repeated params (groupIds=a&groupIds=b).
        """
        params = []
        for key, value in self.model_dump(by_alias=True, exclude_none=True).items():
            if isinstance(value, list):
                params.extend((key, item) for item in value)
            elif isinstance(value, datetime):
                params.append((key, value.isoformat()))
            else:
                params.append((key, str(value)))
        return params
