"""DriftCalculator — 현재 보유량과 목표 비중의 차이 계산.

Algorithm:
    1. 보유/목표 심볼 전체의 가격 조회 (PriceService, 캐시)
    2. 총 평가액 = Σ 수량 × 가격
    3. 목표 자산별 현재 비중, 절대 드리프트 |현재% − 목표%|
    4. 목표 USD − 현재 USD가 총액의 1% 미만이면 매매 생략 (반올림 churn 방지)
    5. USD 델타를 수량으로 환산, USD 규모 내림차순 정렬

가격이 0(제공 불가)인 자산은 매매 지시에서 제외하고 경고만 남깁니다.

Rules Applied:
    - #10 Python Standards: Modern typing, named constants
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from rebalancer.models.drift import CurrentAllocation, DriftAnalysis, RebalancingAction
from rebalancer.models.types import TradeAction

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from rebalancer.market.price_service import PriceService
    from rebalancer.models.index import AssetAllocation

# 총 평가액 대비 매매 생략 허용 오차
DEFAULT_TOLERANCE = 0.01


class DriftCalculator:
    """포트폴리오 드리프트 계산기.

    Args:
        prices: PriceService 인스턴스
        tolerance: 총액 대비 매매 생략 비율 (기본 1%)
    """

    def __init__(self, prices: PriceService, tolerance: float = DEFAULT_TOLERANCE) -> None:
        self._prices = prices
        self._tolerance = tolerance

    async def calculate_drift(
        self,
        holdings: Mapping[str, float],
        targets: Sequence[AssetAllocation],
    ) -> DriftAnalysis:
        """현재 비중과 드리프트, 필요한 매매 지시 계산.

        Args:
            holdings: 심볼 → 보유 수량
            targets: 목표 비중

        Returns:
            DriftAnalysis
        """
        holdings = {symbol.upper(): amount for symbol, amount in holdings.items()}
        logger.debug(
            "Calculating drift ({} holdings, {} targets)", len(holdings), len(targets)
        )

        symbols = [*holdings, *(t.symbol for t in targets)]
        prices = await self._prices.get_prices(symbols)

        total_value = 0.0
        current_values: dict[str, float] = {}
        for symbol, amount in holdings.items():
            usd_value = amount * prices.get(symbol, 0.0)
            current_values[symbol] = usd_value
            total_value += usd_value

        allocations: list[CurrentAllocation] = []
        for target in targets:
            usd_value = current_values.get(target.symbol, 0.0)
            current_pct = usd_value / total_value * 100 if total_value > 0 else 0.0
            drift = abs(current_pct - target.percentage)
            relative = drift / target.percentage * 100 if target.percentage > 0 else 0.0
            allocations.append(
                CurrentAllocation(
                    symbol=target.symbol,
                    amount=holdings.get(target.symbol, 0.0),
                    usd_value=usd_value,
                    current_percentage=current_pct,
                    target_percentage=target.percentage,
                    drift=drift,
                    drift_percentage=relative,
                )
            )

        max_drift = max((a.drift for a in allocations), default=0.0)
        unpriced = sorted(s for s in dict.fromkeys(symbols) if prices.get(s, 0.0) == 0.0)
        actions = self._generate_actions(allocations, total_value, prices)

        logger.info(
            "Portfolio value ${:.2f}, max drift {:.2f}pp, {} actions",
            total_value,
            max_drift,
            len(actions),
        )
        return DriftAnalysis(
            total_value=total_value,
            allocations=allocations,
            max_drift=max_drift,
            rebalancing_actions=actions,
            unpriced_symbols=unpriced,
        )

    def _generate_actions(
        self,
        allocations: Sequence[CurrentAllocation],
        total_value: float,
        prices: Mapping[str, float],
    ) -> list[RebalancingAction]:
        """목표 복귀 매매 지시 생성 (허용 오차 미만/가격 0 자산 제외).

        평가액이 0이면 (미입금 또는 전 자산 가격 없음) 매매 지시를 만들지 않습니다.
        """
        actions: list[RebalancingAction] = []
        if total_value <= 0:
            logger.warning("Portfolio value is 0, no rebalancing actions generated")
            return actions

        band = total_value * self._tolerance

        for allocation in allocations:
            target_usd = allocation.target_percentage / 100 * total_value
            usd_delta = target_usd - allocation.usd_value

            if abs(usd_delta) < band:
                continue

            price = prices.get(allocation.symbol, 0.0)
            if price == 0:
                logger.warning(
                    "Cannot calculate rebalancing action for {}: price is 0", allocation.symbol
                )
                continue

            target_amount = target_usd / price
            amount_delta = abs(target_amount - allocation.amount)
            if amount_delta == 0 or usd_delta == 0:
                continue
            actions.append(
                RebalancingAction(
                    symbol=allocation.symbol,
                    action=TradeAction.BUY if usd_delta > 0 else TradeAction.SELL,
                    current_amount=allocation.amount,
                    target_amount=target_amount,
                    amount_delta=amount_delta,
                    usd_value=abs(usd_delta),
                )
            )

        actions.sort(key=lambda a: a.usd_value, reverse=True)
        return actions

    @staticmethod
    def needs_rebalancing(analysis: DriftAnalysis, threshold: float) -> bool:
        """최대 드리프트가 임계값 이상인지.

        Args:
            analysis: 드리프트 분석 결과
            threshold: 임계값 (pp)
        """
        needed = analysis.max_drift >= threshold
        logger.info(
            "Rebalancing check: max drift {:.2f}pp, threshold {}pp, needed={}",
            analysis.max_drift,
            threshold,
            needed,
        )
        return needed
