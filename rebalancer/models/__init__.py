"""Domain models shared by services, storage and notification layers."""

from rebalancer.models.drift import CurrentAllocation, DriftAnalysis, RebalancingAction
from rebalancer.models.index import (
    Account,
    AssetAllocation,
    Index,
    RebalancingConfig,
    RiskConfig,
    SupportedAsset,
    parse_interval,
)
from rebalancer.models.records import Rebalance, Trade
from rebalancer.models.types import (
    IndexStatus,
    RebalanceReason,
    RebalanceStatus,
    RebalancingMethod,
    SwapStatus,
    TradeAction,
    TradeStatus,
)
from rebalancer.models.webhook import WebhookSubscription

__all__ = [
    "Account",
    "AssetAllocation",
    "CurrentAllocation",
    "DriftAnalysis",
    "Index",
    "IndexStatus",
    "Rebalance",
    "RebalanceReason",
    "RebalanceStatus",
    "RebalancingAction",
    "RebalancingConfig",
    "RebalancingMethod",
    "RiskConfig",
    "SupportedAsset",
    "SwapStatus",
    "Trade",
    "TradeAction",
    "TradeStatus",
    "WebhookSubscription",
    "parse_interval",
]
