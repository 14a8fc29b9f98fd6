"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with FINODASH_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="FINODASH_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Durable storage ---
    storage_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20
    redis_key_prefix: str = "finodash:"
    storage_events_channel: str = "finodash:storage-events"
    backup_version: str = "1.0"
    default_contribution_rate: float = 0.1

    # --- Session ---
    session_ttl_seconds: int = 24 * 60 * 60
    session_poll_interval_seconds: float = 5.0

    # --- Demo credentials ---
    admin_email: str = "admin@finobytes.com"
    admin_password: str = "admin123"
    admin_registration_code: str = "ADMIN2024"
    member_otp_code: str = "123456"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
