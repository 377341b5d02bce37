"""웹훅 이벤트 타입 (닫힌 tagged union).

각 이벤트는 event 필드를 discriminator로 갖는 frozen 모델입니다.
전송 시 data 필드는 camelCase JSON으로 직렬화됩니다.

Envelope:
    {"event": "...", "timestamp": "ISO-8601", "ownerId": "...", "data": {...}}

Rules Applied:
    - #11 Pydantic Modeling: discriminated union, alias_generator
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated, Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from rebalancer.models.drift import RebalancingAction  # noqa: TC001
from rebalancer.models.types import IndexStatus, RebalanceReason, TradeAction, TradeStatus

if TYPE_CHECKING:
    from rebalancer.models.index import Index
    from rebalancer.models.records import Trade

Trigger = Literal["automatic", "manual"]


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    index_id: str


# =============================================================================
# Index
# =============================================================================


class IndexCreatedEvent(_Event):
    """Index 생성."""

    event: Literal["index.created"] = "index.created"
    name: str
    status: IndexStatus


class IndexUpdatedEvent(_Event):
    """Index 설정/상태 변경 (활성화 포함)."""

    event: Literal["index.updated"] = "index.updated"
    name: str
    status: IndexStatus
    changes: list[str] = Field(default_factory=list)


class IndexDeletedEvent(_Event):
    """Index soft delete."""

    event: Literal["index.deleted"] = "index.deleted"
    name: str


class IndexPausedEvent(_Event):
    """자동 리밸런싱 일시 정지."""

    event: Literal["index.paused"] = "index.paused"
    name: str


class IndexResumedEvent(_Event):
    """자동 리밸런싱 재개."""

    event: Literal["index.resumed"] = "index.resumed"
    name: str


# =============================================================================
# Rebalance
# =============================================================================


class RebalanceStartedEvent(_Event):
    """리밸런싱/초기 구성 시작."""

    event: Literal["rebalance.started"] = "rebalance.started"
    rebalance_id: str
    reason: RebalanceReason
    total_drift: float
    planned_trades: int


class RebalanceCompletedEvent(_Event):
    """리밸런싱 완료."""

    event: Literal["rebalance.completed"] = "rebalance.completed"
    rebalance_id: str | None = None
    reason: RebalanceReason
    trigger: Trigger
    max_drift: float
    trades_count: int
    completed_trades_count: int
    duration_seconds: float | None = None


class RebalanceFailedEvent(_Event):
    """리밸런싱 실패."""

    event: Literal["rebalance.failed"] = "rebalance.failed"
    rebalance_id: str | None = None
    reason: RebalanceReason
    trigger: Trigger
    error: str


# =============================================================================
# Trade
# =============================================================================


class _TradeEvent(_Event):
    rebalance_id: str | None = None
    trade_id: str
    action: TradeAction
    from_asset: str
    to_asset: str
    amount: float
    retry_attempt: int = 0


class TradeExecutedEvent(_TradeEvent):
    """스왑 정산 성공."""

    event: Literal["trade.executed"] = "trade.executed"
    tx_hash: str | None = None
    expected_output: str | None = None


class TradeFailedEvent(_TradeEvent):
    """스왑 최종 실패."""

    event: Literal["trade.failed"] = "trade.failed"
    error: str


# =============================================================================
# Drift
# =============================================================================


class DriftDetectedEvent(_Event):
    """모니터가 0보다 큰 드리프트를 관측."""

    event: Literal["drift.detected"] = "drift.detected"
    index_name: str
    max_drift: float
    threshold: float
    total_value: float
    drift_details: list[RebalancingAction] = Field(default_factory=list)


class DriftThresholdExceededEvent(_Event):
    """드리프트가 임계값을 초과해 자동 리밸런싱이 시작됨."""

    event: Literal["drift.threshold_exceeded"] = "drift.threshold_exceeded"
    index_name: str
    max_drift: float
    threshold: float
    total_value: float
    actions_needed: int


WebhookEvent = Annotated[
    IndexCreatedEvent
    | IndexUpdatedEvent
    | IndexDeletedEvent
    | IndexPausedEvent
    | IndexResumedEvent
    | RebalanceStartedEvent
    | RebalanceCompletedEvent
    | RebalanceFailedEvent
    | TradeExecutedEvent
    | TradeFailedEvent
    | DriftDetectedEvent
    | DriftThresholdExceededEvent,
    Field(discriminator="event"),
]

event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)

EVENT_TYPES: tuple[str, ...] = tuple(
    get_args(model.model_fields["event"].annotation)[0]
    for model in get_args(get_args(WebhookEvent)[0])
)


def build_envelope(
    owner_id: str, event: WebhookEvent, timestamp: datetime | None = None
) -> dict[str, Any]:
    """웹훅 전송 envelope 생성.

    Args:
        owner_id: 구독 소유자 ID
        event: 이벤트
        timestamp: 발행 시각 (기본: 현재 UTC)

    Returns:
        JSON 직렬화 가능한 dict
    """
    ts = timestamp or datetime.now(UTC)
    return {
        "event": event.event,
        "timestamp": ts.isoformat().replace("+00:00", "Z"),
        "ownerId": owner_id,
        "data": event.model_dump(mode="json", by_alias=True, exclude={"event"}),
    }


def trade_event(trade: Trade) -> TradeExecutedEvent | TradeFailedEvent:
    """Trade 종료 상태에 맞는 이벤트 생성."""
    common = {
        "index_id": trade.index_id,
        "rebalance_id": trade.rebalance_id,
        "trade_id": trade.trade_id,
        "action": trade.action,
        "from_asset": trade.from_asset,
        "to_asset": trade.to_asset,
        "amount": trade.amount,
        "retry_attempt": trade.retry_attempt,
    }
    if trade.status is TradeStatus.COMPLETED:
        return TradeExecutedEvent(
            **common, tx_hash=trade.tx_hash, expected_output=trade.expected_output
        )
    return TradeFailedEvent(**common, error=trade.error or f"trade ended {trade.status}")


def index_updated_event(index: Index, changes: list[str]) -> IndexUpdatedEvent:
    """Index 변경 이벤트 생성."""
    return IndexUpdatedEvent(
        index_id=index.index_id, name=index.name, status=index.status, changes=changes
    )
