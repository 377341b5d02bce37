"""웹훅 알림: 이벤트 타입, 전송 계층, 디스패처."""

from rebalancer.notification.dispatcher import (
    DeliveryResult,
    EndpointTestResult,
    WebhookDispatcher,
)
from rebalancer.notification.events import (
    EVENT_TYPES,
    DriftDetectedEvent,
    DriftThresholdExceededEvent,
    IndexCreatedEvent,
    IndexDeletedEvent,
    IndexPausedEvent,
    IndexResumedEvent,
    IndexUpdatedEvent,
    RebalanceCompletedEvent,
    RebalanceFailedEvent,
    RebalanceStartedEvent,
    TradeExecutedEvent,
    TradeFailedEvent,
    WebhookEvent,
    build_envelope,
    event_adapter,
    index_updated_event,
    trade_event,
)
from rebalancer.notification.transport import HttpxTransport, NotificationTransport

__all__ = [
    "EVENT_TYPES",
    "DeliveryResult",
    "DriftDetectedEvent",
    "DriftThresholdExceededEvent",
    "EndpointTestResult",
    "HttpxTransport",
    "IndexCreatedEvent",
    "IndexDeletedEvent",
    "IndexPausedEvent",
    "IndexResumedEvent",
    "IndexUpdatedEvent",
    "NotificationTransport",
    "RebalanceCompletedEvent",
    "RebalanceFailedEvent",
    "RebalanceStartedEvent",
    "TradeExecutedEvent",
    "TradeFailedEvent",
    "WebhookDispatcher",
    "WebhookEvent",
    "build_envelope",
    "event_adapter",
    "index_updated_event",
    "trade_event",
]
