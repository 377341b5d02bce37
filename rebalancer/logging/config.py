"""Logging configuration models using Pydantic.

This module defines the configuration schema for the logging service.
All settings can be loaded from environment variables.

Rules Applied:
    - #11 Pydantic Modeling: Settings management, strict types
    - #15 Logging Standards: Configurable dual sinks
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, TypeAlias

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel: TypeAlias = Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


class LoggingConfig(BaseSettings):
    """Configuration for the logging service.

    Loaded from environment variables with LOG_ prefix.

    Attributes:
        log_dir: Directory for log files
        console_level: Minimum level for console output
        file_level: Minimum level for file output
        rotation: File rotation policy (size or time)
        retention: How long to keep rotated files
        compression: Compression format for rotated files
        json_logs: Enable JSON format for file logs
        enable_file: Write the file sink at all (disable for CLI one-shots)
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # File paths
    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory for log files",
    )

    # Log levels
    console_level: LogLevel = Field(
        default="INFO",
        description="Minimum level for console output",
    )
    file_level: LogLevel = Field(
        default="DEBUG",
        description="Minimum level for file output",
    )

    # File rotation settings
    rotation: str = Field(
        default="50 MB",
        description="File rotation policy (e.g., '100 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated files",
    )
    compression: str = Field(
        default="gz",
        description="Compression format (gz, bz2, xz, tar.gz, etc.)",
    )
    json_logs: bool = Field(
        default=True,
        description="Enable JSON serialization for file logs",
    )
    enable_file: bool = Field(
        default=True,
        description="Enable the file sink",
    )

    # Diagnostics (security)
    diagnose: bool = Field(
        default=False,
        description="Enable diagnostic info in tracebacks (disable in prod)",
    )
    backtrace: bool = Field(
        default=True,
        description="Enable full traceback",
    )


def get_logging_config() -> LoggingConfig:
    """Load logging configuration from environment.

    Returns:
        LoggingConfig instance with values from env vars
    """
    return LoggingConfig()
