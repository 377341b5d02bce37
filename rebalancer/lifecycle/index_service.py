"""IndexLifecycleService — Index 상태 전이와 리밸런싱 오케스트레이션.

State Machine (Index):
    PENDING / PENDING_FUNDING → ACTIVE   (초기 구성 성공)
    ACTIVE ↔ PAUSED                     (관리 작업)
    * → DELETED                         (soft delete, 종료)

Operations:
    - construct_initial_portfolio: all-or-nothing 초기 매수
    - execute_rebalancing: 드리프트 임계값 이상이면 best-effort 리밸런싱
    - calculate_current_drift: 현재 비중 스냅샷 저장 (거래 없음)
    - create/update/pause/resume/delete/get: 관리 작업

Event Ownership:
    - rebalance.started, trade.*, index.*: 항상 이 서비스가 발행
    - rebalance.completed/failed: 수동 실행(초기 구성, manual)일 때만 발행.
      자동 실행 결과는 DriftMonitorJob이 보고합니다.

Rules Applied:
    - #23 Exception Handling: 검증은 변경 전, 실패는 레코드에 기록 후 re-raise
    - #15 Logging Standards: index_id / rebalance_id 바인딩
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from rebalancer.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    TradeExecutionError,
    ValidationError,
    add_context_note,
)
from rebalancer.lifecycle.validation import validate_targets
from rebalancer.logging.context import generate_id, get_index_logger
from rebalancer.models.drift import DriftAnalysis  # noqa: TC001
from rebalancer.models.index import Index, RebalancingConfig, RiskConfig
from rebalancer.models.records import Rebalance, Trade
from rebalancer.models.types import (
    IndexStatus,
    RebalanceReason,
    RebalanceStatus,
    TradeStatus,
)
from rebalancer.notification.events import (
    IndexCreatedEvent,
    IndexDeletedEvent,
    IndexPausedEvent,
    IndexResumedEvent,
    RebalanceCompletedEvent,
    RebalanceFailedEvent,
    RebalanceStartedEvent,
    index_updated_event,
    trade_event,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rebalancer.execution.ports import BalanceProvider
    from rebalancer.market.price_service import PriceService
    from rebalancer.models.index import Account, AssetAllocation
    from rebalancer.notification.dispatcher import WebhookDispatcher
    from rebalancer.notification.events import WebhookEvent
    from rebalancer.portfolio.drift_calculator import DriftCalculator
    from rebalancer.portfolio.portfolio_service import PortfolioService
    from rebalancer.storage.repository import Repository

_CONSTRUCTABLE = frozenset({IndexStatus.PENDING, IndexStatus.PENDING_FUNDING, IndexStatus.ACTIVE})

# 자동 실행 사유 (결과 이벤트는 모니터가 발행)
AUTOMATIC_REASONS = frozenset({RebalanceReason.DRIFT_THRESHOLD, RebalanceReason.SCHEDULED})


class RebalanceResult(BaseModel):
    """초기 구성/리밸런싱 결과.

    Attributes:
        rebalanced: 리밸런싱이 성공적으로 수행되었는지
        message: 사람이 읽을 요약
        rebalance: 생성된 Rebalance 레코드 (임계값 미만이면 None)
        trades: 생성된 Trade 레코드
        analysis: 판단에 사용된 드리프트 분석 (초기 구성은 None)
    """

    rebalanced: bool
    message: str
    rebalance: Rebalance | None = None
    trades: list[Trade] = Field(default_factory=list)
    analysis: DriftAnalysis | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _completed(trades: Sequence[Trade]) -> int:
    return sum(1 for t in trades if t.status is TradeStatus.COMPLETED)


class IndexLifecycleService:
    """Index 생애주기 서비스.

    Args:
        repository: 영속화 저장소
        prices: PriceService (지원 자산 검증)
        calculator: DriftCalculator
        portfolio: PortfolioService
        balances: BalanceProvider
        dispatcher: 웹훅 디스패처 (None이면 이벤트 미발행)
        default_drift_threshold: 신규 Index 기본 임계값 (pp)
    """

    def __init__(
        self,
        repository: Repository,
        prices: PriceService,
        calculator: DriftCalculator,
        portfolio: PortfolioService,
        balances: BalanceProvider,
        dispatcher: WebhookDispatcher | None = None,
        *,
        default_drift_threshold: float = 5.0,
    ) -> None:
        self._repo = repository
        self._prices = prices
        self._calculator = calculator
        self._portfolio = portfolio
        self._balances = balances
        self._dispatcher = dispatcher
        self._default_threshold = default_drift_threshold

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_index(self, index_id: str) -> Index:
        """Index 조회.

        Raises:
            NotFoundError: 존재하지 않는 Index
        """
        index = await self._repo.get_index(index_id)
        if index is None:
            msg = "Index not found"
            raise NotFoundError(msg, context={"index_id": index_id})
        return index

    async def list_indexes(self, status: IndexStatus | None = None) -> list[Index]:
        """Index 목록 (status 필터 선택)."""
        return await self._repo.list_indexes(status)

    async def calculate_current_drift(self, index_id: str) -> DriftAnalysis:
        """현재 드리프트 계산 후 스냅샷 저장 (거래 없음).

        Returns:
            DriftAnalysis
        """
        index = await self._live_index(index_id)
        account = await self._account(index.account_id)
        holdings = await self._balances.get_holdings(account)
        analysis = await self._calculator.calculate_drift(holdings, index.target_allocation)

        index.current_allocation = analysis.allocations
        index.total_drift = analysis.max_drift
        index.total_value = analysis.total_value
        index.touch()
        await self._repo.save_index(index)
        return analysis

    # =========================================================================
    # Construction / Rebalancing
    # =========================================================================

    async def construct_initial_portfolio(
        self,
        index_id: str,
        amount: float | None = None,
        base_asset_id: str | None = None,
    ) -> RebalanceResult:
        """기준 통화로 목표 비중 포트폴리오를 구성.

        Args:
            index_id: 대상 Index
            amount: 투입 금액 (None이면 계정의 기준 통화 잔고)
            base_asset_id: 기준 통화 자산 ID 강제 지정

        Returns:
            RebalanceResult (rebalanced=True)

        Raises:
            InvalidStateError: 구성 불가 상태
            ValidationError: 비중/자산/금액 검증 실패 (상태 변경 없음)
            TradeExecutionError: 매수 실패로 구성 중단 (Rebalance FAILED 기록)
        """
        index = await self.get_index(index_id)
        log = get_index_logger(index_id=index_id)
        if index.status not in _CONSTRUCTABLE:
            msg = f"Cannot construct portfolio: index status is {index.status}"
            raise InvalidStateError(msg, context={"index_id": index_id})

        await validate_targets(index.target_allocation, self._prices)
        account = await self._account(index.account_id)

        base = self._portfolio.base_currency
        if amount is None:
            holdings = await self._balances.get_holdings(account)
            amount = holdings.get(base, 0.0)
            log.info("Using {} balance {:.6f} for construction", base, amount)
        if amount <= 0:
            msg = f"Construction amount must be positive ({base})"
            raise ValidationError(msg, context={"amount": amount})

        planned = sum(1 for t in index.target_allocation if t.symbol != base)
        rebalance = await self._open_rebalance(
            index, RebalanceReason.INITIAL_CONSTRUCTION, total_drift=0.0, planned=planned
        )
        log = get_index_logger(index_id=index_id, rebalance_id=rebalance.rebalance_id)
        log.info("Starting initial construction with {:.2f} {}", amount, base)

        try:
            trades = await self._portfolio.construct_portfolio(
                index, account, amount, rebalance.rebalance_id, base_asset_id
            )
        except TradeExecutionError as e:
            self._emit_trades(account, e.trades)
            rebalance.record_completed_trades(_completed(e.trades))
            rebalance.transition_to(RebalanceStatus.FAILED, error=str(e))
            await self._repo.save_rebalance(rebalance)
            self._emit_rebalance_result(account, rebalance, max_drift=0.0)
            log.error("Initial construction failed: {}", e)
            add_context_note(e, f"while constructing index {index_id}")
            raise

        self._emit_trades(account, trades)
        rebalance.record_completed_trades(_completed(trades))
        rebalance.transition_to(RebalanceStatus.COMPLETED)
        await self._repo.save_rebalance(rebalance)

        index.status = IndexStatus.ACTIVE
        index.total_value = amount
        index.total_drift = 0.0
        index.last_rebalance = _utcnow()
        index.touch()
        await self._repo.save_index(index)

        self._emit_rebalance_result(account, rebalance, max_drift=0.0)
        self._emit(account, index_updated_event(index, ["status", "total_value"]))
        log.info("Initial construction completed: {} trades", len(trades))
        return RebalanceResult(
            rebalanced=True,
            message=f"Portfolio constructed with {len(trades)} trades",
            rebalance=rebalance,
            trades=trades,
        )

    async def execute_rebalancing(
        self,
        index_id: str,
        reason: RebalanceReason = RebalanceReason.MANUAL,
    ) -> RebalanceResult:
        """드리프트가 임계값 이상이면 리밸런싱 실행.

        Args:
            index_id: 대상 Index
            reason: 실행 사유

        Returns:
            RebalanceResult (임계값 미만이면 rebalanced=False, 레코드 없음)

        Raises:
            InvalidStateError: ACTIVE가 아닌 Index
        """
        index = await self.get_index(index_id)
        if index.status is not IndexStatus.ACTIVE:
            msg = f"Cannot rebalance: index status is {index.status}"
            raise InvalidStateError(msg, context={"index_id": index_id})
        account = await self._account(index.account_id)

        analysis = await self.calculate_current_drift(index_id)
        index = await self.get_index(index_id)
        threshold = index.rebalancing_config.drift_threshold

        if not self._calculator.needs_rebalancing(analysis, threshold):
            message = (
                f"No rebalance needed: max drift {analysis.max_drift:.2f}pp "
                f"< threshold {threshold}pp"
            )
            get_index_logger(index_id=index_id).info(message)
            return RebalanceResult(rebalanced=False, message=message, analysis=analysis)

        if analysis.total_value <= 0:
            message = "No rebalance possible: portfolio value is 0 (unfunded or unpriced)"
            get_index_logger(index_id=index_id).warning(message)
            return RebalanceResult(rebalanced=False, message=message, analysis=analysis)

        base = self._portfolio.base_currency
        actions = [a for a in analysis.rebalancing_actions if a.symbol != base]
        rebalance = await self._open_rebalance(
            index, reason, total_drift=analysis.max_drift, planned=len(actions)
        )
        log = get_index_logger(index_id=index_id, rebalance_id=rebalance.rebalance_id)
        log.info(
            "Rebalancing ({}): max drift {:.2f}pp, {} actions",
            reason,
            analysis.max_drift,
            len(actions),
        )

        try:
            trades = await self._portfolio.execute_rebalancing(
                index, account, actions, rebalance.rebalance_id
            )
        except Exception as e:
            rebalance.transition_to(RebalanceStatus.FAILED, error=str(e))
            await self._repo.save_rebalance(rebalance)
            if reason not in AUTOMATIC_REASONS:
                self._emit_rebalance_result(account, rebalance, max_drift=analysis.max_drift)
            add_context_note(e, f"while rebalancing index {index_id}")
            raise

        self._emit_trades(account, trades)
        completed = _completed(trades)
        rebalance.record_completed_trades(completed)

        if actions and completed == 0:
            error = f"All {len(actions)} rebalancing trades failed"
            rebalance.transition_to(RebalanceStatus.FAILED, error=error)
            message = error
            log.error(error)
        else:
            rebalance.transition_to(RebalanceStatus.COMPLETED)
            index.total_drift = 0.0
            index.last_rebalance = _utcnow()
            index.touch()
            await self._repo.save_index(index)
            message = f"Rebalanced with {completed}/{len(actions)} trades completed"
            log.info(message)
        await self._repo.save_rebalance(rebalance)

        if reason not in AUTOMATIC_REASONS:
            self._emit_rebalance_result(account, rebalance, max_drift=analysis.max_drift)

        return RebalanceResult(
            rebalanced=rebalance.status is RebalanceStatus.COMPLETED,
            message=message,
            rebalance=rebalance,
            trades=trades,
            analysis=analysis,
        )

    # =========================================================================
    # Administrative operations
    # =========================================================================

    async def create_index(
        self,
        account_id: str,
        name: str,
        target_allocation: Sequence[AssetAllocation],
        *,
        description: str | None = None,
        rebalancing_config: RebalancingConfig | None = None,
        risk_config: RiskConfig | None = None,
    ) -> Index:
        """신규 Index 생성 (PENDING).

        Raises:
            ValidationError: 비중/자산 검증 실패
            NotFoundError: 계정 없음
        """
        account = await self._account(account_id)
        await validate_targets(target_allocation, self._prices)

        index = Index(
            index_id=generate_id("idx"),
            account_id=account_id,
            name=name,
            description=description,
            target_allocation=list(target_allocation),
            rebalancing_config=rebalancing_config
            or RebalancingConfig(drift_threshold=self._default_threshold),
            risk_config=risk_config or RiskConfig(),
        )
        await self._repo.save_index(index)
        get_index_logger(index_id=index.index_id).info("Index '{}' created", name)
        self._emit(
            account,
            IndexCreatedEvent(index_id=index.index_id, name=index.name, status=index.status),
        )
        return index

    async def update_index(
        self,
        index_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        rebalancing_config: RebalancingConfig | None = None,
        target_allocation: Sequence[AssetAllocation] | None = None,
    ) -> Index:
        """Index 설정 변경 (목표 비중은 재검증).

        Raises:
            InvalidStateError: 삭제된 Index
            ValidationError: 비중/자산 검증 실패
        """
        index = await self._live_index(index_id)
        changes: list[str] = []

        if target_allocation is not None:
            await validate_targets(target_allocation, self._prices)
            index.target_allocation = list(target_allocation)
            changes.append("target_allocation")
        if name is not None and name != index.name:
            index.name = name
            changes.append("name")
        if description is not None and description != index.description:
            index.description = description
            changes.append("description")
        if rebalancing_config is not None:
            index.rebalancing_config = rebalancing_config
            changes.append("rebalancing_config")

        if not changes:
            return index

        index.touch()
        await self._repo.save_index(index)
        get_index_logger(index_id=index_id).info("Index updated: {}", ", ".join(changes))
        await self._emit_for(index, index_updated_event(index, changes))
        return index

    async def pause_index(self, index_id: str) -> Index:
        """ACTIVE → PAUSED (자동 리밸런싱 중지)."""
        index = await self._transition(index_id, IndexStatus.ACTIVE, IndexStatus.PAUSED)
        await self._emit_for(index, IndexPausedEvent(index_id=index_id, name=index.name))
        return index

    async def resume_index(self, index_id: str) -> Index:
        """PAUSED → ACTIVE."""
        index = await self._transition(index_id, IndexStatus.PAUSED, IndexStatus.ACTIVE)
        await self._emit_for(index, IndexResumedEvent(index_id=index_id, name=index.name))
        return index

    async def delete_index(self, index_id: str) -> Index:
        """Soft delete (status=DELETED). 레코드는 보존됩니다."""
        index = await self._live_index(index_id)
        index.status = IndexStatus.DELETED
        index.touch()
        await self._repo.save_index(index)
        get_index_logger(index_id=index_id).info("Index deleted")
        await self._emit_for(index, IndexDeletedEvent(index_id=index_id, name=index.name))
        return index

    # =========================================================================
    # Internals
    # =========================================================================

    async def _live_index(self, index_id: str) -> Index:
        index = await self.get_index(index_id)
        if index.status is IndexStatus.DELETED:
            msg = "Index has been deleted"
            raise InvalidStateError(msg, context={"index_id": index_id})
        return index

    async def _account(self, account_id: str) -> Account:
        account = await self._repo.get_account(account_id)
        if account is None:
            msg = "Account not found"
            raise NotFoundError(msg, context={"account_id": account_id})
        return account

    async def _transition(
        self, index_id: str, expected: IndexStatus, target: IndexStatus
    ) -> Index:
        index = await self.get_index(index_id)
        if index.status is not expected:
            msg = f"Cannot move index from {index.status} to {target}"
            raise InvalidStateError(msg, context={"index_id": index_id})
        index.status = target
        index.touch()
        await self._repo.save_index(index)
        get_index_logger(index_id=index_id).info("Index {} -> {}", expected, target)
        return index

    async def _open_rebalance(
        self,
        index: Index,
        reason: RebalanceReason,
        *,
        total_drift: float,
        planned: int,
    ) -> Rebalance:
        rebalance = Rebalance(
            rebalance_id=generate_id("reb"),
            index_id=index.index_id,
            reason=reason,
            total_drift=total_drift,
            trades_count=planned,
        )
        rebalance.transition_to(RebalanceStatus.EXECUTING)
        await self._repo.save_rebalance(rebalance)
        await self._emit_for(
            index,
            RebalanceStartedEvent(
                index_id=index.index_id,
                rebalance_id=rebalance.rebalance_id,
                reason=reason,
                total_drift=total_drift,
                planned_trades=planned,
            ),
        )
        return rebalance

    def _emit_trades(self, account: Account, trades: Sequence[Trade]) -> None:
        for trade in trades:
            if trade.is_terminal:
                self._emit(account, trade_event(trade))

    def _emit_rebalance_result(
        self, account: Account, rebalance: Rebalance, *, max_drift: float
    ) -> None:
        if rebalance.status is RebalanceStatus.COMPLETED:
            event: WebhookEvent = RebalanceCompletedEvent(
                index_id=rebalance.index_id,
                rebalance_id=rebalance.rebalance_id,
                reason=rebalance.reason,
                trigger="manual",
                max_drift=max_drift,
                trades_count=rebalance.trades_count,
                completed_trades_count=rebalance.completed_trades_count,
                duration_seconds=rebalance.duration_seconds,
            )
        else:
            event = RebalanceFailedEvent(
                index_id=rebalance.index_id,
                rebalance_id=rebalance.rebalance_id,
                reason=rebalance.reason,
                trigger="manual",
                error=rebalance.error or "rebalance failed",
            )
        self._emit(account, event)

    async def _emit_for(self, index: Index, event: WebhookEvent) -> None:
        if self._dispatcher is None:
            return
        account = await self._repo.get_account(index.account_id)
        if account is None:
            get_index_logger(index_id=index.index_id).warning(
                "Skipping {} notification: account {} not found", event.event, index.account_id
            )
            return
        self._emit(account, event)

    def _emit(self, account: Account, event: WebhookEvent) -> None:
        if self._dispatcher is not None:
            self._dispatcher.publish(account.owner_id, event)
