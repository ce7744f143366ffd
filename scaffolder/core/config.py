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

    # Logging
    scaffolder_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    scaffolder_debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    scaffolder_log_file: str | None = Field(
        default=None,
        description="Optional path of a rotating log file",
    )

    # Resolution
    scaffolder_exec_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for exec and exec-file values",
    )
    scaffolder_fetch_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for remote document and template fetches",
    )

    # Execution
    scaffolder_marker_file: str = Field(
        default=".scaffolder-initialized",
        description="Name of the completion marker written after a real run",
    )
    scaffolder_working_dir: str = Field(
        default=".",
        description="Directory tasks operate in",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance loaded from environment.

    Example:
        >>> settings = get_settings()
        >>> settings.scaffolder_exec_timeout
        10.0
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
