"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    # Beatline Configuration
    beatline_backend: Literal["auto", "jsonl", "cli", "stub"] = Field(
        default="auto",
        description="Backend adapter to use",
    )
    beatline_repo_path: str = Field(
        default=".",
        description="Repository holding the tracker data",
    )
    beatline_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    beatline_log_dir: str | None = Field(
        default=None,
        description="Directory for rotating log files (disabled when unset)",
    )
    beatline_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    beatline_command_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout in seconds for tracker CLI calls",
    )

    # bd CLI
    bd_bin: str = Field(
        default="bd",
        description="Path or name of the bd binary",
    )
    bd_db: str | None = Field(
        default=None,
        description="Explicit database path passed as --db",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.bd_bin
        'bd'
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
