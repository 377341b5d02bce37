"""Index 생애주기 서비스와 비중 검증."""

from rebalancer.lifecycle.index_service import (
    AUTOMATIC_REASONS,
    IndexLifecycleService,
    RebalanceResult,
)
from rebalancer.lifecycle.validation import (
    ALLOCATION_TOLERANCE,
    validate_allocation,
    validate_supported_assets,
    validate_targets,
)

__all__ = [
    "ALLOCATION_TOLERANCE",
    "AUTOMATIC_REASONS",
    "IndexLifecycleService",
    "RebalanceResult",
    "validate_allocation",
    "validate_supported_assets",
    "validate_targets",
]
