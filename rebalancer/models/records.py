"""Rebalance / Trade 감사 레코드.

State Machine (Trade):
    PENDING   → EXECUTING (제출 시)
    PENDING   → FAILED    (제출 전 검증 실패)
    EXECUTING → COMPLETED | FAILED
    COMPLETED, FAILED: terminal (전이 불가)

Rebalance도 동일한 전이 규칙을 따르며, completed_trades_count는
trades_count를 넘을 수 없습니다.

Rules Applied:
    - #11 Pydantic Modeling: model_validator
    - #12 Data Engineering: UTC datetime
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Self

from pydantic import BaseModel, Field, model_validator

from rebalancer.core.exceptions import InvalidStateTransition
from rebalancer.models.types import (
    RebalanceReason,
    RebalanceStatus,
    TradeAction,
    TradeStatus,
)

_TRADE_TRANSITIONS: dict[TradeStatus, frozenset[TradeStatus]] = {
    TradeStatus.PENDING: frozenset({TradeStatus.EXECUTING, TradeStatus.FAILED}),
    TradeStatus.EXECUTING: frozenset({TradeStatus.COMPLETED, TradeStatus.FAILED}),
    TradeStatus.COMPLETED: frozenset(),
    TradeStatus.FAILED: frozenset(),
}

_REBALANCE_TRANSITIONS: dict[RebalanceStatus, frozenset[RebalanceStatus]] = {
    RebalanceStatus.PENDING: frozenset({RebalanceStatus.EXECUTING, RebalanceStatus.FAILED}),
    RebalanceStatus.EXECUTING: frozenset({RebalanceStatus.COMPLETED, RebalanceStatus.FAILED}),
    RebalanceStatus.COMPLETED: frozenset(),
    RebalanceStatus.FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Trade(BaseModel):
    """단일 자산 스왑 레코드.

    제출 전에 생성되고 정산 결과로 갱신됩니다.
    """

    trade_id: str
    index_id: str
    rebalance_id: str | None = None
    action: TradeAction
    from_asset: str
    to_asset: str
    amount: float = Field(ge=0)
    status: TradeStatus = TradeStatus.PENDING
    deposit_address: str | None = None
    tx_hash: str | None = None
    expected_output: str | None = None
    retry_attempt: int = Field(default=0, ge=0)
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """COMPLETED/FAILED 여부."""
        return not _TRADE_TRANSITIONS[self.status]

    def transition_to(self, status: TradeStatus, *, error: str | None = None) -> None:
        """상태 전이 (허용되지 않으면 InvalidStateTransition).

        Args:
            status: 목표 상태
            error: FAILED 전이 시 기록할 에러 상세
        """
        if status not in _TRADE_TRANSITIONS[self.status]:
            msg = f"Illegal trade transition {self.status} -> {status}"
            raise InvalidStateTransition(msg, context={"trade_id": self.trade_id})
        self.status = status
        if error is not None:
            self.error = error
        if self.is_terminal:
            self.completed_at = _utcnow()


class Rebalance(BaseModel):
    """리밸런싱/초기 구성 1회에 대한 append-only 감사 레코드."""

    rebalance_id: str
    index_id: str
    reason: RebalanceReason
    total_drift: float = 0.0
    status: RebalanceStatus = RebalanceStatus.PENDING
    trades_count: int = Field(default=0, ge=0)
    completed_trades_count: int = Field(default=0, ge=0)
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    duration_seconds: float | None = None

    @model_validator(mode="after")
    def _check_counts(self) -> Self:
        if self.completed_trades_count > self.trades_count:
            msg = (
                f"completed_trades_count ({self.completed_trades_count}) exceeds "
                f"trades_count ({self.trades_count})"
            )
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        """COMPLETED/FAILED 여부."""
        return not _REBALANCE_TRANSITIONS[self.status]

    def transition_to(self, status: RebalanceStatus, *, error: str | None = None) -> None:
        """상태 전이 (종료 시 완료 시각/소요 시간 기록)."""
        if status not in _REBALANCE_TRANSITIONS[self.status]:
            msg = f"Illegal rebalance transition {self.status} -> {status}"
            raise InvalidStateTransition(msg, context={"rebalance_id": self.rebalance_id})
        self.status = status
        if error is not None:
            self.error = error
        if self.is_terminal:
            self.completed_at = _utcnow()
            self.duration_seconds = (self.completed_at - self.created_at).total_seconds()

    def record_completed_trades(self, count: int) -> None:
        """완료 거래 수 기록 (계획 거래 수 초과 금지)."""
        if count > self.trades_count:
            msg = f"completed trades {count} exceed planned {self.trades_count}"
            raise InvalidStateTransition(msg, context={"rebalance_id": self.rebalance_id})
        self.completed_trades_count = count
