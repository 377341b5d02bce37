"""Tests for Trade / Rebalance record state machines."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from rebalancer.core.exceptions import InvalidStateTransition
from rebalancer.models.records import Rebalance, Trade
from rebalancer.models.types import (
    RebalanceReason,
    RebalanceStatus,
    SwapStatus,
    TradeAction,
    TradeStatus,
)


def _trade() -> Trade:
    return Trade(
        trade_id="trd_1",
        index_id="idx_1",
        action=TradeAction.BUY,
        from_asset="USDC",
        to_asset="BTC",
        amount=10.0,
    )


def _rebalance(planned: int = 3) -> Rebalance:
    return Rebalance(
        rebalance_id="reb_1",
        index_id="idx_1",
        reason=RebalanceReason.MANUAL,
        trades_count=planned,
    )


class TestTradeTransitions:
    def test_happy_path(self) -> None:
        trade = _trade()
        trade.transition_to(TradeStatus.EXECUTING)
        trade.transition_to(TradeStatus.COMPLETED)
        assert trade.is_terminal
        assert trade.completed_at is not None

    def test_failed_before_submission(self) -> None:
        trade = _trade()
        trade.transition_to(TradeStatus.FAILED, error="unsupported asset")
        assert trade.status is TradeStatus.FAILED
        assert trade.error == "unsupported asset"

    def test_pending_cannot_complete(self) -> None:
        with pytest.raises(InvalidStateTransition):
            _trade().transition_to(TradeStatus.COMPLETED)

    @pytest.mark.parametrize("terminal", [TradeStatus.COMPLETED, TradeStatus.FAILED])
    def test_terminal_is_final(self, terminal: TradeStatus) -> None:
        trade = _trade()
        trade.transition_to(TradeStatus.EXECUTING)
        trade.transition_to(terminal)
        with pytest.raises(InvalidStateTransition):
            trade.transition_to(TradeStatus.EXECUTING)


class TestRebalanceRecord:
    def test_terminal_records_duration(self) -> None:
        rebalance = _rebalance()
        rebalance.transition_to(RebalanceStatus.EXECUTING)
        rebalance.transition_to(RebalanceStatus.COMPLETED)
        assert rebalance.duration_seconds is not None
        assert rebalance.duration_seconds >= 0

    def test_completed_count_cannot_exceed_planned(self) -> None:
        rebalance = _rebalance(planned=2)
        rebalance.record_completed_trades(2)
        with pytest.raises(InvalidStateTransition):
            rebalance.record_completed_trades(3)

    def test_invalid_counts_rejected_on_construction(self) -> None:
        with pytest.raises(ValidationError):
            Rebalance(
                rebalance_id="reb_1",
                index_id="idx_1",
                reason=RebalanceReason.MANUAL,
                trades_count=1,
                completed_trades_count=2,
            )


class TestSwapStatus:
    @pytest.mark.parametrize(
        ("status", "terminal", "success"),
        [
            (SwapStatus.PENDING_DEPOSIT, False, False),
            (SwapStatus.PROCESSING, False, False),
            (SwapStatus.INCOMPLETE_DEPOSIT, False, False),
            (SwapStatus.SUCCESS, True, True),
            (SwapStatus.REFUNDED, True, False),
            (SwapStatus.FAILED, True, False),
        ],
    )
    def test_flags(self, status: SwapStatus, terminal: bool, success: bool) -> None:
        assert status.is_terminal is terminal
        assert status.is_success is success
