"""Core module - exceptions and logger setup shared by every layer."""

from rebalancer.core.exceptions import (
    AllocationError,
    ExternalServiceError,
    InsufficientBalanceError,
    InvalidStateError,
    InvalidStateTransition,
    NetworkError,
    NotFoundError,
    RebalancerError,
    SettlementFailedError,
    SettlementTimeoutError,
    StorageError,
    TradeError,
    TradeExecutionError,
    UnsupportedAssetError,
    ValidationError,
)

__all__ = [
    "AllocationError",
    "ExternalServiceError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "InvalidStateTransition",
    "NetworkError",
    "NotFoundError",
    "RebalancerError",
    "SettlementFailedError",
    "SettlementTimeoutError",
    "StorageError",
    "TradeError",
    "TradeExecutionError",
    "UnsupportedAssetError",
    "ValidationError",
]
