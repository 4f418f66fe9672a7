"""
Employment Sync Application Configuration
Pydantic Settings for environment variable management
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "empsync"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (PostgreSQL)
    DATABASE_URL: str = Field(
        "postgresql://localhost:5432/empsync",
        description="PostgreSQL connection string",
    )
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False
    DB_REQUIRE_SSL: bool = False

    # Celery broker (Redis)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # CORS (comma-separated string, parsed in main.py)
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Employes.nl payroll provider
    EMPLOYES_BASE_URL: str = "https://connect.employes.nl/v4"
    EMPLOYES_API_KEY: str = Field("", description="Bearer token for the Employes API")
    EMPLOYES_COMPANY_ID: str = Field("", description="Company scope for all provider calls")
    EMPLOYES_TIMEOUT: float = 30.0
    EMPLOYES_PAGE_SIZE: int = 100

    # Sync run tuning
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_BACKOFF_SECONDS: float = 1.0
    SYNC_MAX_WORKERS: int = 4
    SYNC_ENDPOINTS: str = "/employee,/employments"

    # Derived read view
    DERIVED_VIEW_NAME: str = "employment_overview"

    # Domain defaults
    DEFAULT_HOURS_PER_WEEK: float = 36.0
    FRESHNESS_HOURS: int = 24

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def sync_endpoints(self) -> list[str]:
        return [e.strip() for e in self.SYNC_ENDPOINTS.split(",") if e.strip()]

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Settings for composition roots (API dependencies, Celery tasks).

    Components never call this themselves; they receive a Settings
    instance (or the plain values they need) at construction.
    """
    return Settings()
