# Business logic services
from .member_store import SqlAlchemyMemberStore
from .sync_status import SyncPhase, SyncStatusTracker

__all__ = [
    "SqlAlchemyMemberStore",
    "SyncPhase",
    "SyncStatusTracker",
]
