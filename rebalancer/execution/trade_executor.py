"""TradeExecutor — 단일 스왑의 제출, 정산 폴링, 재시도.

Flow:
    1. Trade 레코드를 PENDING으로 저장 (제출 전 감사 기록)
    2. 지원 자산 목록에서 양쪽 자산 해석, 최소 단위 정수로 변환 (내림)
    3. EXECUTING 전이 후 request_swap() → poll_status() 반복
    4. SUCCESS → COMPLETED / REFUNDED·FAILED → 시도 실패

Retry Policy:
    - 최대 max_retries 회 재시도 (총 max_retries + 1 시도)
    - 지연: retry_delay × 시도 번호
    - 재시도 안 함: 검증 오류, 잔고 부족, 정산 타임아웃 (중복 스왑 위험)

Rules Applied:
    - #23 Exception Handling: 명시적 bounded loop, 마지막 에러 보존
    - #15 Logging Standards: trade_id 컨텍스트 바인딩
"""

from __future__ import annotations

import asyncio
import time
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, NoReturn

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from rebalancer.core.exceptions import (
    NON_RETRYABLE_TRADE_ERRORS,
    ExternalServiceError,
    SettlementFailedError,
    SettlementTimeoutError,
    TradeExecutionError,
    ValidationError,
)
from rebalancer.logging.context import generate_id, get_index_logger
from rebalancer.models.records import Trade
from rebalancer.models.types import SwapStatus, TradeAction, TradeStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from rebalancer.execution.ports import SwapExecutionService
    from rebalancer.market.price_service import PriceService
    from rebalancer.models.index import SupportedAsset
    from rebalancer.storage.repository import Repository


class TradeRequest(BaseModel):
    """단일 스왑 요청.

    Attributes:
        index_id: 대상 Index
        rebalance_id: 소속 Rebalance 레코드
        action: BUY/SELL
        from_symbol: 원천 자산 심볼
        to_symbol: 목적 자산 심볼
        amount: 원천 자산 수량 (사람 단위)
        account_id: 서명 계정
        recipient: 수령/환불 주소
        base_asset_id: 기준 통화 자산 ID 강제 지정 (선택)
    """

    model_config = ConfigDict(frozen=True)

    index_id: str
    rebalance_id: str | None = None
    action: TradeAction
    from_symbol: str
    to_symbol: str
    amount: float = Field(gt=0)
    account_id: str
    recipient: str
    base_asset_id: str | None = None


def to_smallest_unit(amount: float, decimals: int) -> int:
    """사람 단위 수량을 최소 단위 정수로 변환 (내림).

    float 오차를 피하기 위해 Decimal(str(amount))로 계산합니다.

    Example:
        >>> to_smallest_unit(39.6, 6)
        39600000
    """
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


class TradeExecutor:
    """스왑 실행기.

    Args:
        repository: Trade 레코드 저장소
        prices: 지원 자산 해석용 PriceService
        swaps: SwapExecutionService 구현체
        base_currency: 기준 통화 심볼
        max_retries: 최대 재시도 횟수
        retry_delay: 재시도 기본 지연 (초)
        poll_interval: 정산 폴링 간격 (초)
        settlement_timeout: 정산 제한 시간 (초)
        sleep: 대기 함수 (테스트 주입용)
        clock: 단조 시계 (테스트 주입용)
    """

    def __init__(
        self,
        repository: Repository,
        prices: PriceService,
        swaps: SwapExecutionService,
        *,
        base_currency: str = "USDC",
        max_retries: int = 2,
        retry_delay: float = 5.0,
        poll_interval: float = 10.0,
        settlement_timeout: float = 600.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repo = repository
        self._prices = prices
        self._swaps = swaps
        self._base_currency = base_currency.upper()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._poll_interval = poll_interval
        self._settlement_timeout = settlement_timeout
        self._sleep = sleep
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        """거래당 최대 시도 횟수."""
        return self._max_retries + 1

    async def execute(self, request: TradeRequest) -> Trade:
        """스왑을 실행하고 COMPLETED Trade를 반환.

        Args:
            request: 스왑 요청

        Returns:
            COMPLETED 상태의 Trade

        Raises:
            TradeExecutionError: 최종 실패 (FAILED Trade가 trades에 포함)
        """
        trade = Trade(
            trade_id=generate_id("trd"),
            index_id=request.index_id,
            rebalance_id=request.rebalance_id,
            action=request.action,
            from_asset=request.from_symbol.upper(),
            to_asset=request.to_symbol.upper(),
            amount=request.amount,
        )
        await self._repo.save_trade(trade)
        log = get_index_logger(
            index_id=request.index_id,
            rebalance_id=request.rebalance_id,
            trade_id=trade.trade_id,
        )
        log.info(
            "Executing {}: {} {} -> {}",
            request.action,
            request.amount,
            trade.from_asset,
            trade.to_asset,
        )

        try:
            from_asset, to_asset = await self._resolve_assets(request)
            amount = to_smallest_unit(request.amount, from_asset.decimals)
            if amount <= 0:
                msg = f"Trade amount {request.amount} {trade.from_asset} rounds to zero"
                raise ValidationError(msg, context={"decimals": from_asset.decimals})
        except (ValidationError, ExternalServiceError) as e:
            log.error("Trade rejected before submission: {}", e)
            await self._reject(trade, e)
        except Exception as e:
            log.exception("Unexpected error before submission")
            await self._reject(trade, e)

        trade.transition_to(TradeStatus.EXECUTING)
        await self._repo.save_trade(trade)

        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = self._retry_delay * attempt
                log.info("Retry attempt {} in {:.1f}s", attempt, delay)
                await self._sleep(delay)
                trade.retry_attempt = attempt
                await self._repo.save_trade(trade)

            try:
                await self._attempt(trade, request, from_asset, to_asset, amount)
            except NON_RETRYABLE_TRADE_ERRORS as e:
                log.error("Trade attempt {} failed (not retryable): {}", attempt + 1, e)
                last_error = e
                break
            except (ExternalServiceError, SettlementFailedError) as e:
                log.warning("Trade attempt {} failed: {}", attempt + 1, e)
                last_error = e
            except Exception as e:
                log.exception("Unexpected error during trade attempt {}", attempt + 1)
                last_error = e
                break
            else:
                trade.transition_to(TradeStatus.COMPLETED)
                await self._repo.save_trade(trade)
                log.info("Trade completed (tx={})", trade.tx_hash)
                return trade

        error = str(last_error) if last_error is not None else "unknown error"
        trade.transition_to(TradeStatus.FAILED, error=error)
        await self._repo.save_trade(trade)
        msg = (
            f"Trade {trade.from_asset} -> {trade.to_asset} failed after "
            f"{trade.retry_attempt + 1} attempt(s): {error}"
        )
        raise TradeExecutionError(msg, trades=[trade]) from last_error

    async def _reject(self, trade: Trade, error: Exception) -> NoReturn:
        """제출 전 실패: Trade를 FAILED로 종결하고 TradeExecutionError로 보고."""
        trade.transition_to(TradeStatus.FAILED, error=str(error))
        await self._repo.save_trade(trade)
        reason = getattr(error, "message", None) or str(error)
        msg = f"Trade {trade.from_asset} -> {trade.to_asset} rejected: {reason}"
        raise TradeExecutionError(msg, trades=[trade]) from error

    async def _resolve_assets(
        self, request: TradeRequest
    ) -> tuple[SupportedAsset, SupportedAsset]:
        """양쪽 자산 해석 (기준 통화 자산 ID 강제 지정 지원)."""
        from_asset = await self._prices.find_asset(request.from_symbol)
        if request.base_asset_id and request.from_symbol.upper() == self._base_currency:
            from_asset = from_asset.model_copy(update={"asset_id": request.base_asset_id})
        to_asset = await self._prices.find_asset(request.to_symbol)
        return from_asset, to_asset

    async def _attempt(
        self,
        trade: Trade,
        request: TradeRequest,
        from_asset: SupportedAsset,
        to_asset: SupportedAsset,
        amount: int,
    ) -> None:
        """단일 제출 + 정산 대기. 성공 이외의 결과는 예외로 보고."""
        submission = await self._swaps.request_swap(
            from_asset.asset_id,
            to_asset.asset_id,
            amount,
            request.recipient,
            request.account_id,
        )
        trade.deposit_address = submission.settlement_reference
        trade.tx_hash = submission.tx_hash
        trade.expected_output = submission.expected_output
        await self._repo.save_trade(trade)

        status = submission.status
        if not status.is_terminal:
            status = await self._await_settlement(submission.settlement_reference)

        if not status.is_success:
            msg = f"Swap settlement ended with {status}"
            raise SettlementFailedError(
                msg, status=str(status), context={"deposit_address": trade.deposit_address}
            )

    async def _await_settlement(self, reference: str) -> SwapStatus:
        """종료 상태가 될 때까지 폴링.

        폴링 중 일시적 서비스 오류는 경고 후 계속 폴링합니다 (재제출 금지).

        Raises:
            SettlementTimeoutError: settlement_timeout 초과
        """
        deadline = self._clock() + self._settlement_timeout
        polls = 0
        while True:
            status: SwapStatus | None
            try:
                status = await self._swaps.poll_status(reference)
            except ExternalServiceError as e:
                status = None
                logger.warning("Status poll failed for {}: {}", reference, e)
            polls += 1
            if status is not None and status.is_terminal:
                return status
            if self._clock() >= deadline:
                msg = f"Settlement not finished within {self._settlement_timeout:.0f}s"
                raise SettlementTimeoutError(
                    msg, context={"deposit_address": reference, "polls": polls}
                )
            await self._sleep(self._poll_interval)
