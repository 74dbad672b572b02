"""
Urgency scoring of change events.

Downstream initiative generation orders pastoral follow-ups by this score.
"""

from care_sync.schemas.sync import ChangeType

DEFAULT_URGENCY = 4

FIELD_URGENCY = {
    "marital_status": 7,
    "address": 7,
    "phone": 5,
    "email": 5,
}

TYPE_URGENCY = {
    ChangeType.CREATED: 6,
}


def calculate_urgency_score(change_type: str, field_name: str = None) -> int:
    """Returns the 1-10 urgency of a change event."""
    if field_name is not None and field_name in FIELD_URGENCY:
        return FIELD_URGENCY[field_name]
    return TYPE_URGENCY.get(change_type, DEFAULT_URGENCY)
