"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Hookflow"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, testing, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./hookflow.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Run queue (empty REDIS_URL = no queue, triggers execute inline)
    REDIS_URL: str = ""
    RUN_QUEUE_KEY: str = "hookflow:run-requests"

    # Worker Settings
    WORKER_ENABLED: bool = True
    WORKER_POLL_WAIT_SECONDS: int = Field(default=10, ge=1, le=20)
    WORKER_ERROR_BACKOFF_SECONDS: float = Field(default=0.5, ge=0)

    # Trigger Settings
    TRIGGER_SYNC_TIMEOUT_MS: int = Field(default=30_000, ge=500, le=60_000)

    # HTTP step defaults (used when a step sets no timeoutMs)
    HTTP_STEP_DEFAULT_TIMEOUT_MS: int = Field(default=2_000, gt=0, le=30_000)
    HTTP_STEP_SLACK_TIMEOUT_MS: int = Field(default=10_000, gt=0, le=30_000)

    # Values for env:NAME markers in send.http_request urls, as a JSON object
    WORKFLOW_SECRETS: dict[str, str] = Field(default_factory=dict)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def queue_configured(self) -> bool:
        """True when triggers are expected to go through the run queue."""
        return bool(self.REDIS_URL.strip())

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
