"""Settings and configuration management."""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DEFAULT_DATABASE_URL = "sqlite:///area-engine.db"


class Settings(BaseSettings):
    """Application settings.

    Priority chain: init kwargs > env vars (AREA_ prefix) > .env file > defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="AREA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field("area-engine", description="Application name")

    # Persistence
    database_url: str = Field(
        _DEFAULT_DATABASE_URL, description="Database URL (sqlite:///path.db)"
    )
    redis_url: str | None = Field(
        None, description="Redis URL for dedup store and event stream (None = in-memory)"
    )

    # Logging
    log_level: str = Field("INFO", description="Log level")
    log_format: str = Field("text", description="Log format: 'text' or 'json'")
    sanitize_logs: bool = Field(True, description="Redact secrets and signatures from logs")

    # Event stream
    events_stream: str = Field("areas:events", description="Redis stream for area events")
    events_consumer_group: str = Field(
        "area-workers", description="Consumer group created on the events stream"
    )
    events_stream_maxlen: int | None = Field(
        10000, ge=1, description="Approximate MAXLEN for the events stream (None = unbounded)"
    )

    # Webhook deduplication TTLs (seconds)
    dedup_ttl_github_seconds: int = Field(1800, ge=1, description="GitHub dedup window")
    dedup_ttl_slack_seconds: int = Field(300, ge=1, description="Slack dedup window")
    dedup_ttl_generic_seconds: int = Field(900, ge=1, description="Other providers dedup window")
    dedup_ttl_default_seconds: int = Field(
        3600, ge=1, description="Dedup window when the provider is unknown"
    )

    # Scheduler
    scheduler_timezone: str = Field("UTC", description="Timezone for cron activations")

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {value!r}")
        return value

    @field_validator("database_url")
    @classmethod
    def _validate_database_url(cls, value: str) -> str:
        if not value.startswith("sqlite://"):
            raise ValueError("Only sqlite:// database URLs are supported")
        return value

    @property
    def uses_redis(self) -> bool:
        return bool(self.redis_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
