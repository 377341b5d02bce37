"""WebhookDispatcher — at-least-once 웹훅 이벤트 전송.

호출자(라이프사이클 서비스, 드리프트 모니터)를 block하지 않도록
publish()는 fire-and-forget 백그라운드 태스크로 전송합니다.
전송 실패는 구독의 failure_count에만 반영되고 호출자에게 전파되지 않습니다.

Delivery Policy:
    - owner의 활성 구독 중 이벤트 타입이 일치하는 것에 동시 전송
    - 이벤트당 최대 max_attempts 회 시도, 실패 후 backoff_base ** attempt 초 대기
    - 실패(상태 코드 ≥ 400 또는 전송 오류)마다 failure_count 증가
    - failure_count ≥ disable_threshold면 구독 비활성화, 이후 재시도 중단
    - 성공 시 failure_count 리셋, last_triggered_at 기록

Rules Applied:
    - #10 Python Standards: asyncio, type hints
    - #23 Exception Handling: 전송 오류는 bookkeeping으로 흡수
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from rebalancer import __version__
from rebalancer.models.types import IndexStatus
from rebalancer.notification.events import IndexCreatedEvent, build_envelope

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine

    from rebalancer.models.webhook import WebhookSubscription
    from rebalancer.notification.events import WebhookEvent
    from rebalancer.notification.transport import NotificationTransport
    from rebalancer.storage.repository import Repository

_DEFAULT_MAX_ATTEMPTS = 3
_DEFAULT_BACKOFF_BASE = 2.0
_DEFAULT_DISABLE_THRESHOLD = 10
_HTTP_ERROR_THRESHOLD = 400
_USER_AGENT = f"IndexRebalancer/{__version__}"


class DeliveryResult(BaseModel):
    """단일 구독에 대한 이벤트 전송 결과.

    Attributes:
        webhook_id: 구독 ID
        delivered: 성공 여부
        attempts: 실제 전송 시도 횟수
        status_code: 마지막 HTTP 상태 코드 (전송 오류면 None)
        disabled: 이번 전송으로 구독이 비활성화되었는지
    """

    model_config = ConfigDict(frozen=True)

    webhook_id: str
    delivered: bool
    attempts: int
    status_code: int | None = None
    disabled: bool = False


class EndpointTestResult(BaseModel):
    """test_endpoint() 결과."""

    model_config = ConfigDict(frozen=True)

    success: bool
    status_code: int | None = None
    error: str | None = None


class WebhookDispatcher:
    """웹훅 이벤트 디스패처.

    Args:
        repository: 구독 저장소
        transport: NotificationTransport 구현체
        max_attempts: 이벤트당 최대 시도 횟수
        backoff_base: 재시도 백오프 밑 (초)
        disable_threshold: 자동 비활성화 연속 실패 횟수
        sleep: 대기 함수 (테스트 주입용)
    """

    def __init__(
        self,
        repository: Repository,
        transport: NotificationTransport,
        *,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = _DEFAULT_BACKOFF_BASE,
        disable_threshold: int = _DEFAULT_DISABLE_THRESHOLD,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repo = repository
        self._transport = transport
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._disable_threshold = disable_threshold
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        """진행 중인 백그라운드 전송 수."""
        return len(self._background_tasks)

    def publish(self, owner_id: str, event: WebhookEvent) -> None:
        """이벤트를 백그라운드로 전송 (fire-and-forget)."""
        self._spawn(self.send_event(owner_id, event))

    async def send_event(self, owner_id: str, event: WebhookEvent) -> list[DeliveryResult]:
        """owner의 일치하는 구독 전체에 이벤트 전송 (예외를 전파하지 않음).

        Args:
            owner_id: 구독 소유자 ID
            event: 전송할 이벤트

        Returns:
            구독별 전송 결과
        """
        try:
            webhooks = [
                w
                for w in await self._repo.list_webhooks(owner_id)
                if w.enabled and w.subscribes_to(event.event)
            ]
            if not webhooks:
                logger.debug("No webhooks registered for {} (owner={})", event.event, owner_id)
                return []

            envelope = build_envelope(owner_id, event)
            headers = {
                "Content-Type": "application/json",
                "User-Agent": _USER_AGENT,
                "X-Webhook-Event": event.event,
                "X-Webhook-Timestamp": envelope["timestamp"],
            }
            logger.info("Sending {} to {} webhook(s)", event.event, len(webhooks))
            outcomes = await asyncio.gather(
                *(self._deliver(w.webhook_id, envelope, headers) for w in webhooks),
                return_exceptions=True,
            )
        except Exception:
            logger.exception("Webhook dispatch failed for {} (owner={})", event.event, owner_id)
            return []

        results: list[DeliveryResult] = []
        for webhook, outcome in zip(webhooks, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.opt(exception=outcome).error(
                    "Webhook {} delivery of {} failed", webhook.webhook_id, event.event
                )
                continue
            results.append(outcome)
        return results

    async def drain(self) -> None:
        """진행 중인 백그라운드 전송이 모두 끝날 때까지 대기."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def test_endpoint(self, url: str) -> EndpointTestResult:
        """테스트 페이로드를 전송해 엔드포인트 도달 가능 여부 확인 (재시도 없음)."""
        event = IndexCreatedEvent(
            index_id="test_index", name="Test Index", status=IndexStatus.ACTIVE
        )
        envelope = build_envelope("test", event)
        envelope["data"]["message"] = "This is a test webhook"
        headers = {
            "Content-Type": "application/json",
            "User-Agent": _USER_AGENT,
            "X-Webhook-Event": "test",
        }
        try:
            status = await self._transport.post(url, envelope, headers)
        except Exception as e:
            return EndpointTestResult(success=False, error=str(e))
        return EndpointTestResult(success=status < _HTTP_ERROR_THRESHOLD, status_code=status)

    async def _deliver(
        self, webhook_id: str, envelope: dict[str, Any], headers: dict[str, str]
    ) -> DeliveryResult:
        """단일 구독 전송 (구독별 lock으로 실패 카운터 직렬화)."""
        async with self._webhook_lock(webhook_id):
            attempts = 0
            status: int | None = None
            for attempt in range(1, self._max_attempts + 1):
                webhook = await self._repo.get_webhook(webhook_id)
                if webhook is None or not webhook.enabled:
                    break

                attempts = attempt
                status = await self._post(webhook, envelope, headers, attempt)
                if status is not None and status < _HTTP_ERROR_THRESHOLD:
                    await self._record_success(webhook)
                    logger.info(
                        "Webhook {} delivered {} (status {}, attempt {})",
                        webhook_id,
                        envelope["event"],
                        status,
                        attempt,
                    )
                    return DeliveryResult(
                        webhook_id=webhook_id, delivered=True, attempts=attempt, status_code=status
                    )

                if await self._record_failure(webhook):
                    return DeliveryResult(
                        webhook_id=webhook_id,
                        delivered=False,
                        attempts=attempt,
                        status_code=status,
                        disabled=True,
                    )

                if attempt < self._max_attempts:
                    delay = self._backoff_base**attempt
                    logger.info("Retrying webhook {} in {:.1f}s", webhook_id, delay)
                    await self._sleep(delay)

            return DeliveryResult(
                webhook_id=webhook_id, delivered=False, attempts=attempts, status_code=status
            )

    @asynccontextmanager
    async def _webhook_lock(self, webhook_id: str) -> AsyncIterator[None]:
        """구독별 lock. 대기자가 없어지면 제거."""
        lock = self._locks.setdefault(webhook_id, asyncio.Lock())
        self._lock_users[webhook_id] = self._lock_users.get(webhook_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[webhook_id] -= 1
            if self._lock_users[webhook_id] == 0:
                del self._lock_users[webhook_id]
                del self._locks[webhook_id]

    async def _post(
        self,
        webhook: WebhookSubscription,
        envelope: dict[str, Any],
        headers: dict[str, str],
        attempt: int,
    ) -> int | None:
        try:
            status = await self._transport.post(webhook.url, envelope, headers)
        except Exception as e:
            logger.warning(
                "Webhook {} transport error (attempt {}/{}): {}",
                webhook.webhook_id,
                attempt,
                self._max_attempts,
                e,
            )
            return None
        if status >= _HTTP_ERROR_THRESHOLD:
            logger.warning(
                "Webhook {} returned {} (attempt {}/{})",
                webhook.webhook_id,
                status,
                attempt,
                self._max_attempts,
            )
        return status

    async def _record_success(self, webhook: WebhookSubscription) -> None:
        webhook.failure_count = 0
        webhook.last_triggered_at = datetime.now(UTC)
        await self._repo.save_webhook(webhook)

    async def _record_failure(self, webhook: WebhookSubscription) -> bool:
        """실패 집계. 비활성화되었으면 True."""
        webhook.failure_count += 1
        webhook.last_triggered_at = datetime.now(UTC)
        disabled = webhook.failure_count >= self._disable_threshold
        if disabled:
            webhook.enabled = False
            logger.warning(
                "Disabling webhook {} after {} consecutive failures",
                webhook.webhook_id,
                webhook.failure_count,
            )
        await self._repo.save_webhook(webhook)
        return disabled

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
