"""
Async database session management using SQLAlchemy 2.0.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from care_sync.core.config import Settings


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async engine with connection pooling."""
    return create_async_engine(
        settings.async_database_url,
        echo=settings.app_debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create async session factory bound to an engine.

    Objects stay readable after commit; the member store converts rows to
    domain objects once the transaction is over.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
