"""Configuration settings loaded from environment variables."""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (postgresql+asyncpg://... or sqlite+aiosqlite:///...)
    database_url: str
    # Upper bound on waiting for a resource row lock (PostgreSQL only)
    lock_timeout_ms: int = Field(default=5000, gt=0)

    # Field encryption
    encryption_key: str = ""
    # Rotated keys still accepted for reads (comma-separated)
    encryption_previous_keys: str = ""
    strict_decryption: bool = False

    # Reservation policy
    cancellation_window_days: int = Field(default=2, ge=0)

    # Notifications
    admin_email: str = "admin@stayfleet.local"

    # Logging
    log_level: str = "INFO"

    # Application
    app_name: str = "stayfleet"
    environment: str = "development"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalize and check the log level name."""
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def previous_encryption_keys(self) -> list[str]:
        """Parse rotated encryption keys from comma-separated string."""
        if not self.encryption_previous_keys:
            return []
        return [key.strip() for key in self.encryption_previous_keys.split(",") if key.strip()]


def load_settings() -> Settings:
    """Load and validate settings from environment."""
    return Settings()  # type: ignore[call-arg]
