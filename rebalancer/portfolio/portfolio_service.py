"""PortfolioService — 초기 구성과 리밸런싱 매매 순서 결정.

Construction (all-or-nothing):
    - 사용 가능 금액 = amount × (1 − buffer), buffer 1% (전송 수수료 대비)
    - 기준 통화 목표는 건너뜀 (이미 계정에 있음)
    - 목표별 percentage / 100 × 사용 가능 금액 매수, 순차 실행
    - 첫 실패에서 중단하고 그때까지의 Trade와 함께 TradeExecutionError

Rebalancing (best-effort):
    - SELL 먼저 (자본 확보), 이후 BUY (amount_delta × 가격 만큼 기준 통화 지출)
    - 실패한 leg는 기록 후 다음 leg 계속

Rules Applied:
    - #23 Exception Handling: 구성은 중단, 리밸런싱은 leg 단위 격리
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rebalancer.core.exceptions import PriceUnavailableError, TradeExecutionError
from rebalancer.execution.trade_executor import TradeRequest
from rebalancer.logging.context import get_index_logger
from rebalancer.models.types import TradeAction, TradeStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rebalancer.execution.trade_executor import TradeExecutor
    from rebalancer.market.price_service import PriceService
    from rebalancer.models.drift import RebalancingAction
    from rebalancer.models.index import Account, Index
    from rebalancer.models.records import Trade

# 초기 구성 시 수수료 대비 예약 비율
DEFAULT_CONSTRUCTION_BUFFER = 0.01


class PortfolioService:
    """포트폴리오 매매 오케스트레이션.

    Args:
        executor: TradeExecutor
        prices: PriceService (BUY 금액 환산)
        base_currency: 기준 통화 심볼
        construction_buffer: 초기 구성 예약 비율
    """

    def __init__(
        self,
        executor: TradeExecutor,
        prices: PriceService,
        *,
        base_currency: str = "USDC",
        construction_buffer: float = DEFAULT_CONSTRUCTION_BUFFER,
    ) -> None:
        self._executor = executor
        self._prices = prices
        self._base = base_currency.upper()
        self._buffer = construction_buffer

    @property
    def base_currency(self) -> str:
        """기준 통화 심볼."""
        return self._base

    def usable_amount(self, amount: float) -> float:
        """버퍼를 제외한 사용 가능 금액."""
        return amount * (1 - self._buffer)

    async def construct_portfolio(
        self,
        index: Index,
        account: Account,
        amount: float,
        rebalance_id: str,
        base_asset_id: str | None = None,
    ) -> list[Trade]:
        """기준 통화로 목표 비중 자산을 순차 매수.

        Args:
            index: 대상 Index
            account: 자금 계정
            amount: 투입 기준 통화 금액
            rebalance_id: 초기 구성 Rebalance ID
            base_asset_id: 기준 통화 자산 ID 강제 지정 (선택)

        Returns:
            COMPLETED Trade 목록

        Raises:
            TradeExecutionError: 첫 실패 시 (trades에 지금까지의 Trade 포함)
        """
        log = get_index_logger(index_id=index.index_id, rebalance_id=rebalance_id)
        usable = self.usable_amount(amount)
        log.info(
            "Constructing portfolio: {:.2f} {} total, {:.2f} usable ({:.2%} reserved)",
            amount,
            self._base,
            usable,
            self._buffer,
        )

        trades: list[Trade] = []
        for target in index.target_allocation:
            if target.symbol == self._base:
                log.info("Skipping {} target (already held)", self._base)
                continue

            spend = target.percentage / 100 * usable
            log.info(
                "Buying {} with {:.2f} {} ({}%)",
                target.symbol,
                spend,
                self._base,
                target.percentage,
            )
            request = TradeRequest(
                index_id=index.index_id,
                rebalance_id=rebalance_id,
                action=TradeAction.BUY,
                from_symbol=self._base,
                to_symbol=target.symbol,
                amount=spend,
                account_id=account.account_id,
                recipient=account.wallet_address,
                base_asset_id=base_asset_id,
            )
            try:
                trades.append(await self._executor.execute(request))
            except TradeExecutionError as e:
                log.error("Portfolio construction aborted at {}: {}", target.symbol, e)
                msg = f"Portfolio construction aborted at {target.symbol}: {e.message}"
                raise TradeExecutionError(
                    msg,
                    trades=[*trades, *e.trades],
                    context={"index_id": index.index_id, "completed": len(trades)},
                ) from e

        log.info("Portfolio construction complete: {} trades", len(trades))
        return trades

    async def execute_rebalancing(
        self,
        index: Index,
        account: Account,
        actions: Sequence[RebalancingAction],
        rebalance_id: str,
    ) -> list[Trade]:
        """SELL → BUY 순서로 리밸런싱 매매 실행 (leg 실패는 격리).

        Returns:
            모든 Trade 레코드 (COMPLETED와 FAILED 모두)
        """
        log = get_index_logger(index_id=index.index_id, rebalance_id=rebalance_id)
        sells = [a for a in actions if a.action is TradeAction.SELL and a.symbol != self._base]
        buys = [a for a in actions if a.action is TradeAction.BUY and a.symbol != self._base]
        log.info("Rebalancing: {} sells, {} buys", len(sells), len(buys))

        trades: list[Trade] = []
        for action in [*sells, *buys]:
            trades.extend(await self._execute_leg(index, account, rebalance_id, action))

        completed = sum(1 for t in trades if t.status is TradeStatus.COMPLETED)
        log.info("Rebalancing trades finished: {}/{} completed", completed, len(trades))
        return trades

    def _request(
        self,
        index: Index,
        account: Account,
        rebalance_id: str,
        symbol: str,
        amount: float,
        action: TradeAction,
    ) -> TradeRequest:
        from_symbol, to_symbol = (
            (symbol, self._base) if action is TradeAction.SELL else (self._base, symbol)
        )
        return TradeRequest(
            index_id=index.index_id,
            rebalance_id=rebalance_id,
            action=action,
            from_symbol=from_symbol,
            to_symbol=to_symbol,
            amount=amount,
            account_id=account.account_id,
            recipient=account.wallet_address,
        )

    async def _execute_leg(
        self,
        index: Index,
        account: Account,
        rebalance_id: str,
        action: RebalancingAction,
    ) -> list[Trade]:
        """리밸런싱 leg 하나 실행. 실패는 기록만 하고 다음 leg로 진행.

        SELL은 amount_delta 수량을 매도, BUY는 amount_delta × 가격만큼 기준 통화를 지출합니다.
        """
        log = get_index_logger(index_id=index.index_id, rebalance_id=rebalance_id)
        verb = action.action.lower()
        try:
            amount = action.amount_delta
            if action.action is TradeAction.BUY:
                amount = await self._prices.calculate_usd_value(action.symbol, action.amount_delta)
            request = self._request(
                index, account, rebalance_id, action.symbol, amount, action.action
            )
            return [await self._executor.execute(request)]
        except PriceUnavailableError as e:
            log.error("Skipping {} {}: {}", verb, action.symbol, e)
        except TradeExecutionError as e:
            log.error("Failed to {} {}: {}", verb, action.symbol, e)
            return e.trades
        except Exception:
            log.exception("Skipping {} {}: unexpected error", verb, action.symbol)
        return []
