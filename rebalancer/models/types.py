"""공용 타입 정의.

여러 레이어에서 공통으로 사용되는 열거형을 정의합니다.
Models, Services, Storage 모듈에서 순환 참조 없이 사용할 수 있습니다.

Rules Applied:
    - #10 Python Standards: StrEnum, modern typing
    - #01 Project Structure: Models can be imported by all layers
"""

from enum import StrEnum


class IndexStatus(StrEnum):
    """Index 생애주기 상태."""

    PENDING = "PENDING"
    PENDING_FUNDING = "pending_funding"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DELETED = "DELETED"


class RebalancingMethod(StrEnum):
    """리밸런싱 정책.

    Attributes:
        NONE: 자동 리밸런싱 비활성
        DAILY: 최소 간격 경과 시 평가
        DRIFT: 매 모니터 tick마다 평가
        HYBRID: DAILY와 동일한 시간 게이트 + 드리프트 임계값
    """

    NONE = "NONE"
    DAILY = "DAILY"
    DRIFT = "DRIFT"
    HYBRID = "HYBRID"


class TradeAction(StrEnum):
    """매매 방향."""

    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(StrEnum):
    """Trade 레코드 상태 (COMPLETED/FAILED는 종료 상태)."""

    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RebalanceStatus(StrEnum):
    """Rebalance 레코드 상태."""

    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RebalanceReason(StrEnum):
    """Rebalance 레코드 생성 사유."""

    INITIAL_CONSTRUCTION = "initial_construction"
    MANUAL = "manual_trigger"
    DRIFT_THRESHOLD = "drift_threshold"
    SCHEDULED = "scheduled"


class SwapStatus(StrEnum):
    """외부 스왑 서비스 정산 상태."""

    PENDING_DEPOSIT = "PENDING_DEPOSIT"
    KNOWN_DEPOSIT_TX = "KNOWN_DEPOSIT_TX"
    PROCESSING = "PROCESSING"
    INCOMPLETE_DEPOSIT = "INCOMPLETE_DEPOSIT"
    SUCCESS = "SUCCESS"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """SUCCESS/REFUNDED/FAILED 여부."""
        return self in _TERMINAL_SWAP_STATUSES

    @property
    def is_success(self) -> bool:
        """SUCCESS 여부."""
        return self is SwapStatus.SUCCESS


_TERMINAL_SWAP_STATUSES = frozenset({SwapStatus.SUCCESS, SwapStatus.REFUNDED, SwapStatus.FAILED})

TERMINAL_TRADE_STATUSES = frozenset({TradeStatus.COMPLETED, TradeStatus.FAILED})
