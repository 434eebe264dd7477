"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API, the worker and the
program generation pipeline.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration (primary)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="forge")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Read replica. Falls back to the primary host when unset.
    POSTGRES_REPLICA_HOST: Optional[str] = Field(default=None)
    POSTGRES_REPLICA_PORT: Optional[int] = Field(default=None)

    # Full URL overrides (scripts, tests, managed databases)
    DATABASE_URL: Optional[str] = Field(default=None)
    REPLICA_DATABASE_URL: Optional[str] = Field(default=None)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration (feature flag cache)
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    FEATURE_FLAG_CACHE_TTL: int = Field(default=300)  # 5 minutes

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Generative model
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    GENERATION_MODEL: str = Field(default="gpt-4o")
    # Low temperature keeps structured output consistent
    GENERATION_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    GENERATION_MAX_TOKENS: int = Field(default=4000)
    GENERATION_TIMEOUT_S: float = Field(default=60.0)
    GENERATION_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    GENERATION_RETRY_BASE_DELAY_S: float = Field(default=1.0)
    GENERATION_RETRY_FACTOR: float = Field(default=2.0)

    # Read-after-write consistency routing
    READ_AFTER_WRITE_WINDOW_S: float = Field(default=60.0)
    READ_AFTER_WRITE_MAX_ENTRIES: int = Field(default=1000, ge=1)
    READ_AFTER_WRITE_SWEEP_INTERVAL_S: float = Field(default=300.0)

    # Generation jobs
    # A pending/processing job older than this is treated as abandoned
    # (worker crash, lost message) and failed before a new one is accepted.
    GENERATION_JOB_STALE_AFTER_S: int = Field(default=30 * 60)

    # Pipeline strategy rollout
    PIPELINE_STRATEGY_FLAG_KEY: str = Field(default="program_generation.structured_output")
    PIPELINE_STRATEGY_DEFAULT: str = Field(default="structured")  # structured | json_mode

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions

    @property
    def primary_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )

    @property
    def replica_database_url(self) -> str:
        if self.REPLICA_DATABASE_URL:
            return self.REPLICA_DATABASE_URL
        if self.DATABASE_URL and not self.POSTGRES_REPLICA_HOST:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_REPLICA_HOST or self.POSTGRES_HOST}:"
            f"{self.POSTGRES_REPLICA_PORT or self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
