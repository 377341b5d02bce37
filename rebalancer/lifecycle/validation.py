"""목표 비중 검증.

상태 변경이나 외부 거래 전에 실행되어야 합니다.

Rules:
    - 목표가 하나 이상 존재
    - 심볼 중복 금지
    - 비중 합계 100 ± 0.01
    - 모든 심볼이 스왑 서비스 지원 자산
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from rebalancer.core.exceptions import AllocationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rebalancer.market.price_service import PriceService
    from rebalancer.models.index import AssetAllocation

ALLOCATION_TOTAL = 100.0
ALLOCATION_TOLERANCE = 0.01


def validate_allocation(targets: Sequence[AssetAllocation]) -> None:
    """비중 구조 검증.

    Raises:
        AllocationError: 비어 있거나, 심볼 중복, 합계 불일치
    """
    if not targets:
        msg = "Target allocation must contain at least one asset"
        raise AllocationError(msg)

    duplicates = sorted(s for s, n in Counter(t.symbol for t in targets).items() if n > 1)
    if duplicates:
        msg = "Target allocation contains duplicate symbols"
        raise AllocationError(msg, context={"duplicates": ",".join(duplicates)})

    total = sum(t.percentage for t in targets)
    if abs(total - ALLOCATION_TOTAL) > ALLOCATION_TOLERANCE:
        msg = "Asset percentages must sum to 100"
        raise AllocationError(msg, context={"total": round(total, 6)})


async def validate_supported_assets(
    targets: Sequence[AssetAllocation], prices: PriceService
) -> None:
    """모든 목표 자산이 지원 자산인지 확인.

    Raises:
        UnsupportedAssetError: 지원하지 않는 자산
    """
    for target in targets:
        await prices.find_asset(target.symbol, target.chain)


async def validate_targets(targets: Sequence[AssetAllocation], prices: PriceService) -> None:
    """구조 + 지원 자산 검증."""
    validate_allocation(targets)
    await validate_supported_assets(targets, prices)
