"""Logging service module.

Loguru configuration models and context-binding helpers.

Rules Applied:
    - #15 Logging Standards: Loguru, dual sinks
"""

from rebalancer.logging.config import LoggingConfig, get_logging_config
from rebalancer.logging.context import (
    clear_context,
    generate_id,
    get_current_context,
    get_index_logger,
)

__all__ = [
    "LoggingConfig",
    "clear_context",
    "generate_id",
    "get_current_context",
    "get_index_logger",
    "get_logging_config",
]
