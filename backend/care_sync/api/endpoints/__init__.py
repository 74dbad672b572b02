# API endpoint routers
from . import changes, health, sync, sync_status

__all__ = ["changes", "health", "sync", "sync_status"]
