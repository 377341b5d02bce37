"""Tests for WebhookDispatcher delivery policy."""

from __future__ import annotations

import pytest

from rebalancer.core.exceptions import NetworkError
from rebalancer.models.types import IndexStatus
from rebalancer.models.webhook import WebhookSubscription
from rebalancer.notification.dispatcher import WebhookDispatcher
from rebalancer.notification.events import IndexCreatedEvent, IndexPausedEvent
from rebalancer.storage.repository import InMemoryRepository
from tests.conftest import RecordingTransport

OWNER = "user_1"


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _ScriptedTransport(RecordingTransport):
    """상태 코드를 순서대로 반환."""

    def __init__(self, statuses: list[int]) -> None:
        super().__init__()
        self.statuses = list(statuses)

    async def post(self, url: str, payload: dict, headers: dict[str, str]) -> int:
        self.calls.append((url, payload, headers))
        return self.statuses.pop(0)


@pytest.fixture
def sleep() -> _RecordingSleep:
    return _RecordingSleep()


def _dispatcher(
    repo: InMemoryRepository, transport: RecordingTransport, sleep: _RecordingSleep
) -> WebhookDispatcher:
    return WebhookDispatcher(repo, transport, sleep=sleep)


def _event(index_id: str = "idx_1") -> IndexCreatedEvent:
    return IndexCreatedEvent(index_id=index_id, name="Majors", status=IndexStatus.PENDING)


async def _subscribe(
    repo: InMemoryRepository, webhook_id: str = "whk_1", events: list[str] | None = None
) -> None:
    await repo.save_webhook(
        WebhookSubscription(
            webhook_id=webhook_id,
            owner_id=OWNER,
            url=f"https://hooks.test/{webhook_id}",
            events=events or ["*"],
        )
    )


class TestDelivery:
    async def test_delivered_with_headers(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        await _subscribe(repo)

        [result] = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert result.delivered
        assert result.attempts == 1
        url, payload, headers = transport.calls[0]
        assert url == "https://hooks.test/whk_1"
        assert payload["event"] == "index.created"
        assert payload["data"]["indexId"] == "idx_1"
        assert headers["X-Webhook-Event"] == "index.created"
        assert headers["X-Webhook-Timestamp"] == payload["timestamp"]
        assert headers["User-Agent"].startswith("IndexRebalancer/")
        webhook = await repo.get_webhook("whk_1")
        assert webhook is not None
        assert webhook.last_triggered_at is not None

    async def test_only_matching_subscriptions(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        await _subscribe(repo, "whk_created", ["index.created"])
        await _subscribe(repo, "whk_paused", ["index.paused"])

        results = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert [r.webhook_id for r in results] == ["whk_created"]

    async def test_no_subscribers(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        results = await _dispatcher(repo, transport, sleep).send_event(
            OWNER, IndexPausedEvent(index_id="idx_1", name="Majors")
        )
        assert results == []
        assert transport.calls == []


class TestRetries:
    async def test_retries_with_backoff(
        self, repo: InMemoryRepository, sleep: _RecordingSleep
    ) -> None:
        await _subscribe(repo)
        transport = _ScriptedTransport([500, 502, 200])

        [result] = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert result.delivered
        assert result.attempts == 3
        assert sleep.delays == [2.0, 4.0]
        webhook = await repo.get_webhook("whk_1")
        assert webhook is not None
        assert webhook.failure_count == 0

    async def test_attempts_capped_per_event(
        self, repo: InMemoryRepository, sleep: _RecordingSleep
    ) -> None:
        await _subscribe(repo)
        transport = RecordingTransport(status=500)

        [result] = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert not result.delivered
        assert result.attempts == 3
        assert result.status_code == 500
        webhook = await repo.get_webhook("whk_1")
        assert webhook is not None
        assert webhook.failure_count == 3
        assert webhook.enabled

    async def test_transport_error_counts_as_failure(
        self, repo: InMemoryRepository, sleep: _RecordingSleep
    ) -> None:
        await _subscribe(repo)
        transport = RecordingTransport(error=NetworkError("connection refused"))

        [result] = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert not result.delivered
        assert result.status_code is None
        webhook = await repo.get_webhook("whk_1")
        assert webhook is not None
        assert webhook.failure_count == 3


class TestAutoDisable:
    async def test_disabled_after_ten_consecutive_failures(
        self, repo: InMemoryRepository, sleep: _RecordingSleep
    ) -> None:
        await _subscribe(repo)
        transport = RecordingTransport(status=500)
        dispatcher = _dispatcher(repo, transport, sleep)

        for _ in range(3):
            await dispatcher.send_event(OWNER, _event())
        [last] = await dispatcher.send_event(OWNER, _event())

        assert last.disabled
        assert len(transport.calls) == 10
        webhook = await repo.get_webhook("whk_1")
        assert webhook is not None
        assert not webhook.enabled
        assert webhook.failure_count == 10

        assert await dispatcher.send_event(OWNER, _event()) == []
        assert len(transport.calls) == 10


class TestBackground:
    async def test_publish_and_drain(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        await _subscribe(repo)
        dispatcher = _dispatcher(repo, transport, sleep)

        dispatcher.publish(OWNER, _event("idx_1"))
        dispatcher.publish(OWNER, _event("idx_2"))
        assert dispatcher.pending == 2
        await dispatcher.drain()

        assert dispatcher.pending == 0
        assert sorted(p["data"]["indexId"] for _, p, _ in transport.calls) == ["idx_1", "idx_2"]


class TestIsolation:
    async def test_failing_subscription_does_not_drop_others(
        self,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        class _FlakyRepository(InMemoryRepository):
            async def get_webhook(self, webhook_id: str) -> WebhookSubscription | None:
                if webhook_id == "whk_broken":
                    raise RuntimeError("storage unavailable")
                return await super().get_webhook(webhook_id)

        repo = _FlakyRepository()
        await _subscribe(repo, "whk_broken")
        await _subscribe(repo, "whk_ok")

        results = await _dispatcher(repo, transport, sleep).send_event(OWNER, _event())

        assert [(r.webhook_id, r.delivered) for r in results] == [("whk_ok", True)]
        assert [url for url, _, _ in transport.calls] == ["https://hooks.test/whk_ok"]

    async def test_locks_released_after_delivery(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        await _subscribe(repo, "whk_1")
        await _subscribe(repo, "whk_2")
        dispatcher = _dispatcher(repo, transport, sleep)

        for index_id in ("idx_1", "idx_2", "idx_3"):
            dispatcher.publish(OWNER, _event(index_id))
        await dispatcher.drain()

        assert len(transport.calls) == 6
        assert dispatcher._locks == {}


class TestEndpointCheck:
    async def test_success(
        self,
        repo: InMemoryRepository,
        transport: RecordingTransport,
        sleep: _RecordingSleep,
    ) -> None:
        result = await _dispatcher(repo, transport, sleep).test_endpoint("https://hooks.test/new")

        assert result.success
        assert result.status_code == 200
        _, payload, headers = transport.calls[0]
        assert payload["data"]["message"] == "This is a test webhook"
        assert headers["X-Webhook-Event"] == "test"

    async def test_http_error(self, repo: InMemoryRepository, sleep: _RecordingSleep) -> None:
        result = await _dispatcher(repo, RecordingTransport(status=404), sleep).test_endpoint(
            "https://hooks.test/new"
        )
        assert not result.success
        assert result.status_code == 404

    async def test_unreachable(self, repo: InMemoryRepository, sleep: _RecordingSleep) -> None:
        transport = RecordingTransport(error=NetworkError("dns failure"))
        result = await _dispatcher(repo, transport, sleep).test_endpoint("https://nowhere.test")
        assert not result.success
        assert "dns failure" in (result.error or "")
