# Database configuration and session management
from .base import Base, JSONType
from .session import create_engine_from_settings, create_session_maker

__all__ = [
    "Base",
    "JSONType",
    "create_engine_from_settings",
    "create_session_maker",
]
