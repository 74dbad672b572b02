"""
Care Sync - FastAPI Application Entry Point

Multi-tenant InChurch member sync with change detection for pastoral care.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from care_sync.api.endpoints import changes, health, sync, sync_status
from care_sync.core.config import get_settings
from care_sync.db.base import Base
from care_sync.db.session import create_engine_from_settings, create_session_maker
from care_sync.services.member_store import SqlAlchemyMemberStore
from care_sync.services.sync_status import SyncStatusTracker

settings = get_settings()
logger = logging.getLogger(__name__)


async def init_database(engine):
    """Initialize database tables."""
    # Import all models to ensure they're registered with Base
    from care_sync import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs startup and shutdown logic.
    """
    logger.info("🚀 Starting Care Sync...")
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Debug Mode: {settings.app_debug}")
    logger.info(f"InChurch API: {settings.inchurch_api_url}")

    engine = create_engine_from_settings(settings)
    await init_database(engine)
    logger.info("✅ Database tables initialized")

    app.state.session_maker = create_session_maker(engine)
    app.state.member_store = SqlAlchemyMemberStore(app.state.session_maker)
    app.state.sync_status = SyncStatusTracker()

    logger.info("✅ Startup complete! Ready to accept requests.")
    logger.info("=" * 60)

    yield

    logger.info("👋 Shutting down Care Sync...")
    await engine.dispose()
    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="Care Sync",
    description="InChurch member delta sync with change events for pastoral care",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Include API routers
app.include_router(health.router, tags=["Health"])
app.include_router(sync.router, prefix="/api/v1", tags=["Sync"])
app.include_router(sync_status.router, prefix="/api/v1", tags=["Monitoring"])
app.include_router(changes.router, prefix="/api/v1", tags=["Changes"])


@app.get("/", tags=["Health"])
async def root():
    """Service banner."""
    return {
        "status": "healthy",
        "service": "Care Sync",
        "version": "0.1.0",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "care_sync.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
