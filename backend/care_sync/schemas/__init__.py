# Shared domain schemas
from .sync import (
    CanonicalMember,
    ChangeEvent,
    ChangeType,
    ConflictReport,
    FieldConflict,
    SyncError,
    SyncRunResult,
    SyncRunStatus,
    TenantSyncReport,
    TenantSyncStatus,
)

__all__ = [
    "CanonicalMember",
    "ChangeEvent",
    "ChangeType",
    "ConflictReport",
    "FieldConflict",
    "SyncError",
    "SyncRunResult",
    "SyncRunStatus",
    "TenantSyncReport",
    "TenantSyncStatus",
]
