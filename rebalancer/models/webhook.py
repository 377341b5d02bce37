"""웹훅 구독 모델 (외부 CRUD가 관리, 코어는 전송 통계만 갱신)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class WebhookSubscription(BaseModel):
    """등록된 웹훅 엔드포인트.

    Attributes:
        webhook_id: 구독 ID
        owner_id: 소유 사용자 ID
        url: 전송 대상 URL
        events: 구독 이벤트 타입 목록 ("*"는 전체)
        enabled: 활성 여부 (연속 실패 시 자동 비활성화)
        failure_count: 연속 실패 횟수
        last_triggered_at: 마지막 전송 시각
    """

    webhook_id: str
    owner_id: str
    url: str
    events: list[str] = Field(default_factory=list)
    enabled: bool = True
    failure_count: int = Field(default=0, ge=0)
    last_triggered_at: datetime | None = None

    def subscribes_to(self, event_type: str) -> bool:
        """이벤트 타입 구독 여부."""
        return "*" in self.events or event_type in self.events
