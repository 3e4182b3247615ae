"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration shared across services."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./channel_manager.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=False,
        description="Whether this service should create/update database tables on startup.",
    )
    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    widget_rate_limit: str = Field(default="20/minute", description="Rate limit for public widget bookings")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")

    slot_opening_hour: int = Field(default=8, ge=0, le=23, description="First bookable start hour")
    slot_closing_hour: int = Field(default=18, ge=0, le=23, description="Last bookable start hour (inclusive)")
    slot_step_minutes: int = Field(default=60, gt=0, le=240, description="Spacing between catalog slots")
    default_currency: str = Field(default="EUR", description="Currency used when an owner has no preference")

    google_client_id: str = Field(default="", description="OAuth client id for Google Calendar")
    google_client_secret: str = Field(default="", description="OAuth client secret for Google Calendar")
    google_redirect_uri: str = Field(
        default="http://localhost:8006/integrations/google-calendar/callback",
        description="Redirect URI registered with Google",
    )
    dashboard_url: str = Field(default="http://localhost:3000", description="Front-end base URL for redirects")
    oauth_state_ttl: int = Field(default=600, description="Lifetime (s) of a pending OAuth state nonce")

    users_service_port: int = 8001
    organisations_service_port: int = 8002
    properties_service_port: int = 8003
    rooms_service_port: int = 8004
    reservations_service_port: int = 8005
    integrations_service_port: int = 8006
    widget_service_port: int = 8007


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
