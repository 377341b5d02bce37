"""DriftMonitorJob — ACTIVE Index 드리프트 주기 점검과 자동 리밸런싱.

Method Gate:
    - NONE: 건너뜀
    - DRIFT: 매 tick 평가
    - DAILY / HYBRID: 리밸런싱 이력이 없거나 min_rebalance_interval 경과 시 평가
      (둘 다 평가 후 드리프트 임계값을 적용)

Evaluation:
    1. calculate_current_drift → drift > 0이면 drift.detected
    2. drift > threshold면 drift.threshold_exceeded 후
       execute_rebalancing(reason=DRIFT_THRESHOLD)
    3. 결과에 따라 rebalance.completed / rebalance.failed

Index별 평가는 동시에 실행되며 서로 격리됩니다 (return_exceptions=True).

Rules Applied:
    - #23 Exception Handling: Index 단위 격리, 실패는 이벤트로 보고
    - #15 Logging Standards: index_id 바인딩
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel

from rebalancer.logging.context import clear_context, get_index_logger
from rebalancer.models.types import (
    IndexStatus,
    RebalanceReason,
    RebalanceStatus,
    RebalancingMethod,
)
from rebalancer.notification.events import (
    DriftDetectedEvent,
    DriftThresholdExceededEvent,
    RebalanceCompletedEvent,
    RebalanceFailedEvent,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from rebalancer.lifecycle.index_service import IndexLifecycleService
    from rebalancer.models.index import Index
    from rebalancer.notification.dispatcher import WebhookDispatcher
    from rebalancer.notification.events import WebhookEvent
    from rebalancer.storage.repository import Repository


class MonitorRunSummary(BaseModel):
    """1회 모니터 실행 요약.

    Attributes:
        total: 점검 대상 ACTIVE Index 수
        evaluated: 드리프트를 계산한 Index 수
        rebalanced: 리밸런싱이 완료된 Index 수
        failed: 평가 또는 리밸런싱이 실패한 Index 수
    """

    total: int = 0
    evaluated: int = 0
    rebalanced: int = 0
    failed: int = 0


class _Outcome(BaseModel):
    evaluated: bool = False
    rebalanced: bool = False
    failed: bool = False


def should_evaluate(index: Index, now: datetime) -> bool:
    """리밸런싱 방식과 마지막 실행 시각으로 평가 여부 결정."""
    config = index.rebalancing_config
    match config.method:
        case RebalancingMethod.NONE:
            return False
        case RebalancingMethod.DRIFT:
            return True
        case RebalancingMethod.DAILY | RebalancingMethod.HYBRID:
            if index.last_rebalance is None:
                return True
            return now - index.last_rebalance >= config.min_rebalance_interval
    return False


class DriftMonitorJob:
    """드리프트 모니터 작업.

    Args:
        repository: Index/Account 저장소
        lifecycle: IndexLifecycleService
        dispatcher: 웹훅 디스패처 (None이면 이벤트 미발행)
        clock: 현재 UTC 시각 함수 (테스트 주입용)
    """

    name = "drift-monitor"

    def __init__(
        self,
        repository: Repository,
        lifecycle: IndexLifecycleService,
        dispatcher: WebhookDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._lifecycle = lifecycle
        self._dispatcher = dispatcher
        self._clock = clock or (lambda: datetime.now(UTC))

    async def execute(self) -> MonitorRunSummary:
        """모든 ACTIVE Index 점검.

        Returns:
            MonitorRunSummary
        """
        indexes = await self._repo.list_indexes(IndexStatus.ACTIVE)
        logger.info("Drift monitor: checking {} active indexes", len(indexes))
        if not indexes:
            return MonitorRunSummary()

        now = self._clock()
        results = await asyncio.gather(
            *(self._check_index(index, now) for index in indexes), return_exceptions=True
        )

        summary = MonitorRunSummary(total=len(indexes))
        for index, result in zip(indexes, results, strict=True):
            if isinstance(result, BaseException):
                logger.opt(exception=result).error(
                    "Drift check crashed for index {}", index.index_id
                )
                summary.failed += 1
                continue
            summary.evaluated += int(result.evaluated)
            summary.rebalanced += int(result.rebalanced)
            summary.failed += int(result.failed)

        logger.info(
            "Drift monitor finished: {}/{} evaluated, {} rebalanced, {} failed",
            summary.evaluated,
            summary.total,
            summary.rebalanced,
            summary.failed,
        )
        return summary

    async def _check_index(self, index: Index, now: datetime) -> _Outcome:
        clear_context()
        log = get_index_logger(index_id=index.index_id)

        if index.rebalancing_config.method is RebalancingMethod.NONE:
            log.debug("Rebalancing disabled, skipping")
            return _Outcome()
        if not should_evaluate(index, now):
            log.debug(
                "Not time to check ({}; last rebalance {})",
                index.rebalancing_config.method,
                index.last_rebalance,
            )
            return _Outcome()

        account = await self._repo.get_account(index.account_id)
        owner_id = account.owner_id if account is not None else None
        threshold = index.rebalancing_config.drift_threshold

        try:
            analysis = await self._lifecycle.calculate_current_drift(index.index_id)
        except Exception as e:
            log.exception("Drift calculation failed")
            self._emit(
                owner_id,
                RebalanceFailedEvent(
                    index_id=index.index_id,
                    reason=RebalanceReason.DRIFT_THRESHOLD,
                    trigger="automatic",
                    error=str(e),
                ),
            )
            return _Outcome(failed=True)

        log.info(
            "Drift {:.2f}pp (threshold {}pp, value ${:.2f})",
            analysis.max_drift,
            threshold,
            analysis.total_value,
        )
        if analysis.max_drift > 0:
            self._emit(
                owner_id,
                DriftDetectedEvent(
                    index_id=index.index_id,
                    index_name=index.name,
                    max_drift=analysis.max_drift,
                    threshold=threshold,
                    total_value=analysis.total_value,
                    drift_details=analysis.rebalancing_actions,
                ),
            )

        if analysis.max_drift <= threshold:
            return _Outcome(evaluated=True)

        log.info("Drift threshold exceeded, triggering rebalancing")
        self._emit(
            owner_id,
            DriftThresholdExceededEvent(
                index_id=index.index_id,
                index_name=index.name,
                max_drift=analysis.max_drift,
                threshold=threshold,
                total_value=analysis.total_value,
                actions_needed=len(analysis.rebalancing_actions),
            ),
        )

        try:
            result = await self._lifecycle.execute_rebalancing(
                index.index_id, reason=RebalanceReason.DRIFT_THRESHOLD
            )
        except Exception as e:
            log.exception("Automatic rebalancing failed")
            self._emit(
                owner_id,
                RebalanceFailedEvent(
                    index_id=index.index_id,
                    reason=RebalanceReason.DRIFT_THRESHOLD,
                    trigger="automatic",
                    error=str(e),
                ),
            )
            return _Outcome(evaluated=True, failed=True)

        rebalance = result.rebalance
        if rebalance is not None and rebalance.status is RebalanceStatus.COMPLETED:
            log.info("Automatic rebalancing completed")
            self._emit(
                owner_id,
                RebalanceCompletedEvent(
                    index_id=index.index_id,
                    rebalance_id=rebalance.rebalance_id,
                    reason=rebalance.reason,
                    trigger="automatic",
                    max_drift=analysis.max_drift,
                    trades_count=rebalance.trades_count,
                    completed_trades_count=rebalance.completed_trades_count,
                    duration_seconds=rebalance.duration_seconds,
                ),
            )
            return _Outcome(evaluated=True, rebalanced=True)

        if rebalance is None:
            log.info("Rebalancing not needed at execution time: {}", result.message)
            return _Outcome(evaluated=True)

        log.warning("Automatic rebalancing failed: {}", rebalance.error)
        self._emit(
            owner_id,
            RebalanceFailedEvent(
                index_id=index.index_id,
                rebalance_id=rebalance.rebalance_id,
                reason=rebalance.reason,
                trigger="automatic",
                error=rebalance.error or result.message,
            ),
        )
        return _Outcome(evaluated=True, failed=True)

    def _emit(self, owner_id: str | None, event: WebhookEvent) -> None:
        if self._dispatcher is None or owner_id is None:
            return
        self._dispatcher.publish(owner_id, event)
