"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./confbook.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=120, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="100/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")
    room_cache_ttl: int = Field(default=60, description="TTL (s) for cached room listings")
    log_dir: str = Field(default="logs", description="Directory for per-service access logs")
    min_password_length: int = Field(default=6, description="Minimum accepted password length")

    side_effect_workers: int = Field(default=4, description="Worker threads for notifications and audit writes")

    email_enabled: bool = Field(default=False, description="Send booking emails over SMTP")
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    email_from: str = "no-reply@confbook.local"

    rabbitmq_enabled: bool = Field(default=False, description="Publish booking events to RabbitMQ")
    rabbitmq_host: str = "rabbitmq"
    rabbitmq_queue: str = "bookings"

    reminders_enabled: bool = Field(default=False, description="Allow the reminder job to send notifications")
    reminder_minutes_before: int = Field(default=60, description="Lead time of booking reminders")
    reminder_tolerance_minutes: int = Field(default=30, description="Half-width of the reminder window")

    users_service_port: int = 8001
    rooms_service_port: int = 8002
    bookings_service_port: int = 8003
    reports_service_port: int = 8004


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
