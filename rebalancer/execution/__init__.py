"""스왑 실행 계층: 외부 Port 정의와 TradeExecutor."""

from rebalancer.execution.ports import (
    BalanceProvider,
    PriceOracle,
    SigningProvider,
    SwapExecutionService,
    SwapSubmission,
)
from rebalancer.execution.trade_executor import TradeExecutor, TradeRequest, to_smallest_unit

__all__ = [
    "BalanceProvider",
    "PriceOracle",
    "SigningProvider",
    "SwapExecutionService",
    "SwapSubmission",
    "TradeExecutor",
    "TradeRequest",
    "to_smallest_unit",
]
