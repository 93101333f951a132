"""Application configuration and settings management."""
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent / ".." / ".env"),
        env_file_encoding="utf-8",
        env_prefix="BOOKWORM_",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = "Bookworm"
    secret_key: str = "change-me"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./bookworm.db"

    # Web
    frontend_url: str = "http://localhost:8081"
    allowed_origins: List[str] = [
        "http://localhost:8081",
        "http://127.0.0.1:8081",
    ]

    # Sessions and credentials
    session_expiry_days: int = 30
    verification_expiry_hours: int = 24
    password_reset_expiry_hours: int = 1
    password_hash_rounds: int = 3  # Argon2 time cost
    password_hash_memory_kib: int = 65536
    session_cookie_name: str = "token"
    session_cookie_secure: bool = True
    csrf_protection_enabled: bool = True
    registration_enabled: bool = True

    # Email
    email_from: str = "Bookworm <no-reply@bookworm.local>"
    resend_api_key: str | None = None

    # Geolocation (MaxMind GeoIP2 web service)
    maxmind_account_id: str | None = None
    maxmind_license_key: str | None = None
    geolocation_timeout_seconds: float = 5.0

    # Scheduler
    token_cleanup_interval_minutes: int = 60

    # SSL/TLS
    ssl_enabled: bool = False
    https_port: int = 8443

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: List[str] | str) -> List[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings instance."""

    return Settings()
