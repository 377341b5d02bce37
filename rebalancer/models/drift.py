"""드리프트 분석 결과 모델 (영속화되지 않는 계산 값).

Rules Applied:
    - #11 Pydantic Modeling: frozen=True
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from rebalancer.models.types import TradeAction


class CurrentAllocation(BaseModel):
    """자산별 현재 비중 스냅샷.

    Attributes:
        symbol: 자산 심볼
        amount: 보유 수량
        usd_value: USD 평가액
        current_percentage: 현재 비중 (%)
        target_percentage: 목표 비중 (%)
        drift: 절대 드리프트 (percentage points)
        drift_percentage: 목표 대비 상대 드리프트 (%)
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    amount: float
    usd_value: float
    current_percentage: float
    target_percentage: float
    drift: float
    drift_percentage: float


class RebalancingAction(BaseModel):
    """목표 비중 복귀를 위한 단일 매매 지시."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    action: TradeAction
    current_amount: float
    target_amount: float
    amount_delta: float = Field(ge=0)
    usd_value: float = Field(ge=0)


class DriftAnalysis(BaseModel):
    """포트폴리오 드리프트 분석 결과.

    Attributes:
        total_value: 총 평가액 (USD)
        allocations: 목표 자산별 스냅샷
        max_drift: 최대 자산별 드리프트 (pp), 정책 임계값과 비교하는 값
        rebalancing_actions: USD 규모 내림차순 매매 지시
        unpriced_symbols: 가격을 얻지 못해 제외된 심볼
    """

    model_config = ConfigDict(frozen=True)

    total_value: float
    allocations: list[CurrentAllocation]
    max_drift: float
    rebalancing_actions: list[RebalancingAction]
    unpriced_symbols: list[str] = Field(default_factory=list)

    @property
    def sell_actions(self) -> list[RebalancingAction]:
        """SELL 지시만."""
        return [a for a in self.rebalancing_actions if a.action is TradeAction.SELL]

    @property
    def buy_actions(self) -> list[RebalancingAction]:
        """BUY 지시만."""
        return [a for a in self.rebalancing_actions if a.action is TradeAction.BUY]
