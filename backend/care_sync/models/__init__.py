# SQLAlchemy models
from .organization import Organization
from .person import Person
from .person_change import PersonChange
from .sync_conflict import SyncConflict
from .sync_log import SyncLog

__all__ = ["Organization", "Person", "PersonChange", "SyncConflict", "SyncLog"]
