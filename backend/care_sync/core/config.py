"""
Application configuration using Pydantic Settings.
Loads environment variables from .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Sync source stamped on every record written by the polling reconciler
DAILY_POLLING_SYNC_SOURCE = "daily_polling"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    # The unauthenticated cron bypass needs an explicit APP_ENV=development
    app_env: str = Field(default="production", alias="APP_ENV")
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")

    # Shared secret the scheduler sends as "Authorization: Bearer <secret>"
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    # -------------------------------------------------------------------------
    # PostgreSQL
    # -------------------------------------------------------------------------
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="care_sync", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="postgres", alias="POSTGRES_PASSWORD")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    @property
    def async_database_url(self) -> str:
        """Build async database URL for SQLAlchemy."""
        if self.database_url:
            # Ensure we use the async driver
            url = self.database_url
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+psycopg://", 1)
            return url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # InChurch API (remote CRM)
    # Credentials are per tenant and live on the organization row, not here.
    # -------------------------------------------------------------------------
    inchurch_api_url: str = Field(
        default="https://api.inchurch.com.br/v1",
        alias="INCHURCH_API_URL",
    )
    inchurch_request_timeout: float = Field(
        default=10.0,
        alias="INCHURCH_REQUEST_TIMEOUT",
        description="HTTP request timeout in seconds",
    )
    inchurch_max_retries: int = Field(
        default=3,
        ge=0,
        alias="INCHURCH_MAX_RETRIES",
        description="Extra attempts after the first for retryable failures",
    )
    inchurch_rate_limit_requests: int = Field(
        default=200,
        gt=0,
        alias="INCHURCH_RATE_LIMIT_REQUESTS",
        description="Max requests per rate limit window (per tenant client)",
    )
    inchurch_rate_limit_window: float = Field(
        default=60.0,
        gt=0,
        alias="INCHURCH_RATE_LIMIT_WINDOW",
        description="Rate limit window length in seconds",
    )
    inchurch_cache_ttl: float = Field(
        default=300.0,
        ge=0,
        alias="INCHURCH_CACHE_TTL",
        description="GET response cache TTL in seconds",
    )
    inchurch_cache_max_keys: int = Field(
        default=1000,
        gt=0,
        alias="INCHURCH_CACHE_MAX_KEYS",
    )

    # -------------------------------------------------------------------------
    # Sync Orchestrator
    # -------------------------------------------------------------------------
    sync_page_size: int = Field(default=100, gt=0, alias="SYNC_PAGE_SIZE")
    sync_page_delay_ms: int = Field(
        default=300,
        ge=0,
        alias="SYNC_PAGE_DELAY_MS",
        description="Fixed pause between member pages, on top of client throttling",
    )
    sync_max_concurrent_tenants: int = Field(
        default=1,
        gt=0,
        alias="SYNC_MAX_CONCURRENT_TENANTS",
    )
    sync_run_timeout_seconds: float | None = Field(
        default=None,
        alias="SYNC_RUN_TIMEOUT_SECONDS",
        description="Overall deadline for one sync run (None = no deadline)",
    )
    sync_conflict_recency_hours: float = Field(
        default=24.0,
        ge=0,
        alias="SYNC_CONFLICT_RECENCY_HOURS",
        description="Local edits newer than this trigger manual review",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Note: Settings are cached! If you change .env, restart the server.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Call this if you need to reload settings."""
    get_settings.cache_clear()
