"""Application settings loaded from the environment."""
from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseModel):
    """Controls the periodic renewal scan."""

    enabled: bool = True
    renewal_scan_hour: int = Field(default=2, ge=0, le=23)
    renewal_scan_minute: int = Field(default=0, ge=0, le=59)


class LimitSettings(BaseModel):
    """Per-actor request limits for mutating endpoints."""

    rate_limit_rpm: int = 60
    idempotency_ttl_seconds: int = 60 * 30


class Settings(BaseSettings):
    """Runtime configuration for the subscription engine service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    PROJECT_NAME: str = "Subscription Lifecycle Service"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api"

    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "subscriptions"
    DATABASE_URI: str | None = None
    DB_ECHO: bool = False

    REDIS_URI: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str | None = None

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    SYSTEM_ACTOR_ID: str = "system"

    scheduler: SchedulerSettings = SchedulerSettings()
    limits: LimitSettings = LimitSettings()

    @property
    def database_url(self) -> str:
        if self.DATABASE_URI:
            return str(self.DATABASE_URI)
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URI


settings = Settings()
