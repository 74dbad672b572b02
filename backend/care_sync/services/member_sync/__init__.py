"""
Member Sync Module.

Daily polling sync of InChurch members into the canonical member store.
"""

from .conflict_resolver import (
    ConflictPolicy,
    ConflictPolicyError,
    ConflictResolver,
    Resolution,
    ResolutionStrategy,
)
from .delta_detector import TRACKED_FIELDS, DeltaDetector, FieldChange
from .error_tracker import ErrorSummary, ErrorTracker
from .sync_orchestrator import SyncOrchestrator
from .urgency import calculate_urgency_score

__all__ = [
    "ConflictPolicy",
    "ConflictPolicyError",
    "ConflictResolver",
    "Resolution",
    "ResolutionStrategy",
    "TRACKED_FIELDS",
    "DeltaDetector",
    "FieldChange",
    "ErrorSummary",
    "ErrorTracker",
    "SyncOrchestrator",
    "calculate_urgency_score",
]
