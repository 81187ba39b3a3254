"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for the reservations service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./slot_reservations.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether the service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    log_level: str = Field(default="INFO", description="Level for application loggers")
    log_dir: str = Field(default="logs", description="Directory receiving per-service audit logs")

    min_duration_minutes: int = Field(default=15, description="Shortest reservable interval")
    default_ttl_ms: int = Field(default=30_000, description="Hold time for pending reservations")
    min_ttl_ms: int = Field(default=1_000, description="Lower bound for a requested TTL")
    max_ttl_ms: int = Field(default=300_000, description="Upper bound for a requested TTL")
    slot_step_minutes: int = Field(default=15, description="Increment between enumerated candidate slots")
    min_slot_minutes: int = Field(default=15, description="Shortest slot duration the enumerator accepts")
    max_slot_minutes: int = Field(default=480, description="Longest slot duration the enumerator accepts")
    cleanup_age_ms: int = Field(default=300_000, description="Age after which the admin cleanup drops pending rows")

    sweeper_enabled: bool = Field(default=True, description="Run the background reclamation sweep")
    sweeper_interval_seconds: float = Field(default=60.0, description="Delay between reclamation passes")
    sweeper_grace_seconds: float = Field(
        default=3600.0,
        description="Age past expiry before a lapsed row is reclaimed; confirm answers 410 until then",
    )

    appointments_service_url: Optional[str] = Field(
        default=None,
        description="Base URL used to verify appointment references on confirm. Unset skips verification.",
    )
    appointments_timeout_seconds: float = Field(default=5.0, description="Timeout for appointment lookups")
    appointments_owner_field: str = Field(
        default="doctor",
        description="Field of the appointment payload that must equal the confirming caller",
    )

    events_enabled: bool = Field(default=False, description="Publish lifecycle events to RabbitMQ")
    rabbitmq_host: str = Field(default="rabbitmq", description="RabbitMQ host for lifecycle events")
    events_queue: str = Field(default="slot_reservations", description="Durable queue receiving lifecycle events")

    reservations_service_port: int = 8005


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
