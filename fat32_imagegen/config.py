"""Configuration settings for fat32_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fat32_imagegen.types import IMAGE_OVERHEAD_MB


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the FAT32_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="FAT32_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    tmp_dir: Path | None = Field(
        default=None,
        description="Parent directory for mount points (uses system default if not set)",
    )

    # Operational modes
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    overwrite_policy: Literal["overwrite", "reject"] = Field(
        default="overwrite",
        description="What to do when the output image already exists",
    )

    # External tools
    sudo_command: str = Field(
        default="sudo",
        description="Privilege escalation prefix (empty to disable)",
    )
    archive_tool: str = Field(
        default="7z",
        description="Archive listing/extraction tool",
    )

    # Sizing
    overhead_mb: int = Field(
        default=IMAGE_OVERHEAD_MB,
        ge=IMAGE_OVERHEAD_MB,
        description="Extra MiB added to content size for FAT32 cluster minimums",
    )

    # Timeouts (in seconds)
    command_timeout: int = Field(
        default=300,
        ge=1,
        description="Timeout for unprivileged tools (parted, mkfs.fat, 7z listing)",
    )
    populate_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for extraction or copy (None waits for completion)",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
