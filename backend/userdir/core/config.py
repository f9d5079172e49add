"""Application configuration and settings management."""
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global service settings loaded from environment variables or .env."""

    model_config = SettingsConfigDict(
        env_file=(Path(__file__).resolve().parent.parent / ".." / ".env"),
        env_file_encoding="utf-8",
        env_prefix="USERDIR_",
        extra="ignore",
    )

    app_name: str = "User Directory"
    secret_key: str = "change-me"

    # Database
    database_url: str = "sqlite+aiosqlite:///./userdir.db"

    # Registration: when False only Admin callers may create users
    open_registration: bool = True

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # Caller identity, signed by the gateway with secret_key
    caller_header: str = "X-Caller"
    caller_max_age_seconds: int | None = 300

    # Internal transport
    host: str = "127.0.0.1"
    port: int = 8081

    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings instance."""

    return Settings()
