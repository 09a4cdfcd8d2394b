"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Autoflow"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Public base URL used when building webhook URLs
    BACKEND_URL: str = "http://localhost:8000"

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./autoflow.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis Settings (Celery broker when SCHEDULER_MODE=celery)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Step executors
    HTTP_STEP_TIMEOUT: float = 30.0

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT: float = 30.0

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_MODE: str = "inprocess"  # inprocess or celery
    SCHEDULER_RECONCILE_INTERVAL: int = 300  # 5 minutes
    SCHEDULER_POLL_INTERVAL: float = 5.0
    SCHEDULER_DISPATCH_LEASE: int = 900  # seconds before a claimed job is requeued
    SCHEDULER_MAX_CONCURRENCY: int = 4

    # Execution history page size
    EXECUTION_HISTORY_LIMIT: int = 50

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

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
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def smtp_sender(self) -> str:
        """Envelope sender; falls back to the relay login like most SMTP setups."""
        return self.SMTP_FROM or self.SMTP_USER or "autoflow@localhost"

    @property
    def runs_inprocess_scheduler(self) -> bool:
        return self.SCHEDULER_ENABLED and self.SCHEDULER_MODE == "inprocess"

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
