"""Context binding utilities for structured logging.

This module provides async-safe context propagation using contextvars.
It ensures that index_id, rebalance_id and trade_id are attached to log
records even when several indexes are evaluated concurrently.

Rules Applied:
    - #15 Logging Standards: Context binding with logger.bind()
    - #10 Python Standards: contextvars for async safety
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

# =============================================================================
# Context Variables (Async-Safe)
# =============================================================================
# These are automatically propagated across await boundaries in asyncio

current_index_id: ContextVar[str | None] = ContextVar("index_id", default=None)
current_rebalance_id: ContextVar[str | None] = ContextVar("rebalance_id", default=None)
current_trade_id: ContextVar[str | None] = ContextVar("trade_id", default=None)


# =============================================================================
# Logger Factory Functions
# =============================================================================


def get_index_logger(
    *,
    index_id: str | None = None,
    rebalance_id: str | None = None,
    trade_id: str | None = None,
    **extra: str,
) -> Logger:
    """Get a logger with rebalancing context bound.

    Args:
        index_id: Index being operated on
        rebalance_id: Rebalance record of the current operation
        trade_id: Trade record of the current swap
        **extra: Additional context key-value pairs

    Returns:
        Logger instance with context bound

    Example:
        >>> log = get_index_logger(index_id="idx_1a2b", rebalance_id="reb_9f8e")
        >>> log.info("Rebalancing started")
    """
    ctx: dict[str, str] = {}

    if index_id:
        ctx["index_id"] = index_id
        current_index_id.set(index_id)
    if rebalance_id:
        ctx["rebalance_id"] = rebalance_id
        current_rebalance_id.set(rebalance_id)
    if trade_id:
        ctx["trade_id"] = trade_id
        current_trade_id.set(trade_id)

    ctx.update(extra)

    return logger.bind(**ctx)


def generate_id(prefix: str) -> str:
    """Generate a short prefixed identifier.

    Args:
        prefix: Prefix such as "idx", "reb", "trd", "whk"

    Returns:
        Identifier like "reb_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def get_current_context() -> dict[str, str | None]:
    """Get all current context values."""
    return {
        "index_id": current_index_id.get(),
        "rebalance_id": current_rebalance_id.get(),
        "trade_id": current_trade_id.get(),
    }


def clear_context() -> None:
    """Clear all context variables.

    Should be called at the start of new task processing
    to prevent context leakage.
    """
    current_index_id.set(None)
    current_rebalance_id.set(None)
    current_trade_id.set(None)
