"""Custom exception hierarchy for the rebalancing engine.

Exceptions are categorized by their nature and expected handling behavior,
so the Trade Executor can decide between retry and fail-fast without
inspecting messages.

Exception Categories:
    - Validation (Reject before any state mutation)
    - Not Found (Unknown index/account/webhook)
    - External Service (Recoverable - Retry per policy, then surface)
    - Trade (Terminal settlement outcomes)
    - Storage (Persistence layer misconfiguration)

Rules Applied:
    - #23 Exception Handling: Domain-driven hierarchy, add_note()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rebalancer.models.records import Trade


class RebalancerError(Exception):
    """모든 리밸런서 예외의 기본 클래스.

    이 예외를 직접 발생시키지 말고, 하위 클래스를 사용하세요.

    Attributes:
        message: 에러 메시지
        context: 추가 컨텍스트 정보 (디버깅용)
    """

    def __init__(self, message: str, *, context: dict[str, object] | None = None) -> None:
        """RebalancerError 초기화.

        Args:
            message: 에러 메시지
            context: 추가 컨텍스트 정보 (선택)
        """
        super().__init__(message)
        self.message = message
        self.context: dict[str, object] = context or {}

    def __str__(self) -> str:
        """에러 메시지와 컨텍스트를 포함한 문자열 반환."""
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


# =============================================================================
# Validation Errors (Reject - no state mutation)
# =============================================================================


class ValidationError(RebalancerError):
    """입력 검증 오류 (잘못된 비중, 지원하지 않는 자산 등).

    상태 변경이나 외부 호출 전에 발생해야 합니다.
    """


class AllocationError(ValidationError):
    """목표 비중 검증 실패 (합계 ≠ 100, 중복 심볼 등).

    Example:
        >>> raise AllocationError(
        ...     "Asset percentages must sum to 100",
        ...     context={"total": 99.5}
        ... )
    """


class UnsupportedAssetError(ValidationError):
    """스왑 서비스가 지원하지 않는 자산."""


class InvalidStateError(ValidationError):
    """현재 Index 상태에서 허용되지 않는 작업 (예: PAUSED 상태에서 리밸런싱)."""


class InvalidStateTransition(RebalancerError):
    """Trade/Rebalance 레코드의 허용되지 않는 상태 전이.

    종료 상태(COMPLETED/FAILED)에서 벗어나려는 시도가 대표적입니다.
    """


# =============================================================================
# Not Found
# =============================================================================


class NotFoundError(RebalancerError):
    """존재하지 않는 Index/Account/Webhook 조회.

    Example:
        >>> raise NotFoundError("Index not found", context={"index_id": "idx_1"})
    """


# =============================================================================
# External Service Errors (Recoverable - Retry with backoff)
# =============================================================================


class ExternalServiceError(RebalancerError):
    """외부 서비스(오라클, 스왑 서비스, RPC) 오류의 기본 클래스.

    일시적 오류일 수 있으므로 정책에 따라 재시도합니다.
    """


class NetworkError(ExternalServiceError):
    """네트워크 연결 오류 (타임아웃, 연결 실패 등)."""


class RateLimitError(ExternalServiceError):
    """API 레이트 리밋 초과 (HTTP 429).

    Attributes:
        retry_after: 재시도까지 대기 시간 (초)
    """

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.retry_after = retry_after


class PriceUnavailableError(ExternalServiceError):
    """오라클이 해당 심볼의 가격을 제공하지 않음."""


# =============================================================================
# Trade Errors
# =============================================================================


class TradeError(RebalancerError):
    """개별 스왑 실행 관련 오류의 기본 클래스."""


class InsufficientBalanceError(TradeError):
    """잔고 부족 (스왑 서비스 보고). 재시도하지 않는 종료 오류입니다."""


class SettlementFailedError(TradeError):
    """정산이 REFUNDED 또는 FAILED 상태로 종료됨.

    Attributes:
        status: 최종 정산 상태 문자열
    """

    def __init__(
        self,
        message: str,
        *,
        status: str,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.status = status


class SettlementTimeoutError(TradeError):
    """정산 폴링 제한 시간 초과. 중복 스왑 위험 때문에 재시도하지 않습니다."""


class TradeExecutionError(TradeError):
    """재시도 소진 후의 최종 거래 실패 또는 포트폴리오 구성 중단.

    Attributes:
        trades: 실패 시점까지 생성된 Trade 레코드
    """

    def __init__(
        self,
        message: str,
        *,
        trades: list[Trade] | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.trades: list[Trade] = trades or []


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(RebalancerError):
    """영속화 계층 오류 (연결 전 사용, 스키마 버전 불일치 등)."""


# Trade Executor가 재시도하지 않는 오류
NON_RETRYABLE_TRADE_ERRORS: tuple[type[RebalancerError], ...] = (
    ValidationError,
    NotFoundError,
    InsufficientBalanceError,
    SettlementTimeoutError,
)


# =============================================================================
# Utility Functions
# =============================================================================


def add_context_note(exc: Exception, note: str) -> None:
    """예외에 컨텍스트 노트 추가 (Python 3.11+ add_note).

    원본 Traceback을 보존하면서 디버깅 정보를 추가합니다.

    Args:
        exc: 예외 객체
        note: 추가할 노트 문자열

    Example:
        >>> try:
        ...     await executor.execute(request)
        ... except Exception as e:
        ...     add_context_note(e, f"Failed while rebalancing {index_id}")
        ...     raise
    """
    exc.add_note(note)
