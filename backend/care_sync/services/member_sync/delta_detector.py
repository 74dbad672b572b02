"""
Delta Detector for Member Sync.

Computes the meaningful field-level differences between a canonical member
and a freshly fetched InChurch member.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from care_sync.integrations.inchurch.schema import Address, RemoteMember
from care_sync.schemas.sync import CanonicalMember
from care_sync.utils.contact import normalize_email, normalize_phone

logger = logging.getLogger(__name__)

# Order matters: change events are emitted in this order
TRACKED_FIELDS = (
    "name",
    "email",
    "phone",
    "birth_date",
    "marital_status",
    "address",
)

CRITICAL_FIELDS = frozenset({"marital_status", "address"})
CONTACT_FIELDS = frozenset({"phone", "email"})


@dataclass
class FieldChange:
    """A single tracked field whose effective value differs."""
    field: str
    old_value: Any
    new_value: Any


def _normalize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text.casefold()


def _normalize_date(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return text.casefold()


def _normalize_address(value: Any) -> Optional[Dict[str, Optional[str]]]:
    if value is None:
        return None
    if isinstance(value, dict):
        value = Address.model_validate(value)
    if not isinstance(value, Address):
        return {"raw": _normalize_text(value)}
    normalized = {
        key: _normalize_text(component)
        for key, component in value.model_dump().items()
    }
    if all(component is None for component in normalized.values()):
        return None
    return normalized


def normalize_field(field_name: str, value: Any) -> Any:
    """
    Returns the comparison form of a tracked field value.

    None, missing and blank strings all normalize to None; strings compare
    trimmed and case-insensitive; phones compare in E.164 form; addresses
    compare component-wise.
    """
    if field_name == "address":
        return _normalize_address(value)
    if field_name == "birth_date":
        return _normalize_date(value)
    if field_name in CONTACT_FIELDS:
        return _normalize_text(ingest_value(field_name, value))
    return _normalize_text(value)


def ingest_value(field_name: str, value: Any) -> Any:
    """Returns the stored form of a remote value (normalized phone and e-mail)."""
    if field_name == "phone":
        return normalize_phone(value)
    if field_name == "email":
        return normalize_email(value)
    return value


class DeltaDetector:
    """
    Field-level change detector.

    Pure: compares two snapshots and never touches storage or network.
    """

    def __init__(self, tracked_fields: tuple = TRACKED_FIELDS):
        self.tracked_fields = tracked_fields

    def detect(self, local: CanonicalMember, remote: RemoteMember) -> List[FieldChange]:
        """
        Detects changes between the local record and the remote member.

        Args:
            local: Canonical member as currently persisted
            remote: Member as just fetched from InChurch

        Returns:
            FieldChange list in tracked field order (empty = nothing to do)

        Raises:
            ValueError: If the local record has no tenant
        """
        if local is None or remote is None:
            raise ValueError("detect() requires both a local and a remote record")
        if local.tenant_id is None:
            raise ValueError(f"Local member {local.id} has no tenant_id")

        changes = []
        for field_name in self.tracked_fields:
            old_value = getattr(local, field_name, None)
            new_value = ingest_value(field_name, getattr(remote, field_name, None))

            if self.has_field_changed(field_name, old_value, new_value):
                changes.append(FieldChange(field=field_name, old_value=old_value, new_value=new_value))

        if changes:
            logger.debug(
                f"Member {remote.id}: {len(changes)} change(s) "
                f"({', '.join(change.field for change in changes)})"
            )
        return changes

    @staticmethod
    def has_field_changed(field_name: str, old_value: Any, new_value: Any) -> bool:
        """True when the normalized values differ."""
        return normalize_field(field_name, old_value) != normalize_field(field_name, new_value)

    @staticmethod
    def calculate_significance(changes: List[FieldChange]) -> str:
        """
        Classifies a change set as 'low', 'medium' or 'high'.

        - high: marital status or address changed
        - medium: phone/email changed, or more than 2 changes
        - low: anything else
        """
        changed = {change.field for change in changes}

        if changed & CRITICAL_FIELDS:
            return "high"
        if changed & CONTACT_FIELDS or len(changes) > 2:
            return "medium"
        return "low"
