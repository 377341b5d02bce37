"""Loguru logging configuration.

This module provides a centralized logging setup. All logging in the
application should use the configured loguru logger.

Features:
    - Dual sinks: Console (human-readable) + File (JSON serialized)
    - File rotation/retention/compression via loguru
    - Structured logging with context binding

Rules Applied:
    - #15 Logging Standards: Loguru, dual sinks
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from rebalancer.logging.config import LoggingConfig, get_logging_config
from rebalancer.logging.context import get_index_logger

# =============================================================================
# Console Format Templates
# =============================================================================

CONSOLE_FORMAT_DEFAULT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logger_from_config(config: LoggingConfig | None = None) -> None:
    """Initialize logger from Pydantic config model.

    Args:
        config: LoggingConfig instance (loads from env if None)

    Example:
        >>> from rebalancer.core.logger import setup_logger_from_config
        >>> setup_logger_from_config()  # Loads from LOG_* env vars
    """
    if config is None:
        config = get_logging_config()

    _setup_logger_internal(config)


def setup_logger(
    log_dir: Path | str = Path("logs"),
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    *,
    enable_file: bool = True,
) -> None:
    """Initialize the logger with minimal configuration.

    Args:
        log_dir: Directory for log files (default: "logs")
        console_level: Console output level (default: "INFO")
        file_level: File output level (default: "DEBUG")
        enable_file: Write the rotating file sink

    Example:
        >>> from rebalancer.core.logger import setup_logger, logger
        >>> setup_logger(log_dir="logs", console_level="DEBUG")
        >>> logger.info("Rebalancer started")
    """
    config = LoggingConfig(
        log_dir=Path(log_dir),
        console_level=console_level,  # type: ignore[arg-type]
        file_level=file_level,  # type: ignore[arg-type]
        enable_file=enable_file,
    )
    _setup_logger_internal(config)


def _setup_logger_internal(config: LoggingConfig) -> None:
    """Internal logger setup using config object."""
    logger.remove()

    # 1. Console Handler (Human-readable)
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT_DEFAULT,
        level=config.console_level,
        colorize=True,
        backtrace=config.backtrace,
        diagnose=config.diagnose,
    )

    # 2. File Handler (rotation handled by loguru, enqueue for async safety)
    if config.enable_file:
        log_path = Path(config.log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        suffix = "json" if config.json_logs else "log"
        logger.add(
            log_path / f"rebalancer_{{time:YYYY-MM-DD}}.{suffix}",
            format="{message}" if config.json_logs else CONSOLE_FORMAT_DEFAULT,
            level=config.file_level,
            serialize=config.json_logs,
            rotation=config.rotation,
            retention=config.retention,
            compression=config.compression,
            enqueue=True,
            backtrace=config.backtrace,
            diagnose=False,
        )

    logger.info(
        "Logger initialized (console={}, file={}, json={})",
        config.console_level,
        config.file_level if config.enable_file else "off",
        config.json_logs,
    )


__all__ = [
    "get_index_logger",
    "logger",
    "setup_logger",
    "setup_logger_from_config",
]
