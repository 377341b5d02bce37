"""Tests for IndexLifecycleService."""

from __future__ import annotations

from collections import Counter

import pytest

from rebalancer.app import Container
from rebalancer.core.exceptions import (
    AllocationError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    TradeExecutionError,
    UnsupportedAssetError,
)
from rebalancer.models.index import Account, AssetAllocation, RebalancingConfig
from rebalancer.models.types import (
    IndexStatus,
    RebalanceReason,
    RebalanceStatus,
    RebalancingMethod,
    SwapStatus,
    TradeStatus,
)
from rebalancer.models.webhook import WebhookSubscription
from rebalancer.storage.repository import InMemoryRepository
from tests.conftest import (
    FakeBalances,
    FakeSwaps,
    RecordingTransport,
    make_index,
    scenario_a_holdings,
)


@pytest.fixture
async def seeded(container: Container, repo: InMemoryRepository, account: Account) -> Container:
    """계정 + 전체 이벤트 구독 웹훅 저장."""
    await repo.save_account(account)
    await repo.save_webhook(
        WebhookSubscription(
            webhook_id="whk_1", owner_id=account.owner_id, url="https://hooks.test/x", events=["*"]
        )
    )
    return container


async def _events(container: Container, transport: RecordingTransport) -> Counter[str]:
    await container.dispatcher.drain()
    return Counter(transport.events())


class TestQueries:
    async def test_get_unknown(self, seeded: Container) -> None:
        with pytest.raises(NotFoundError):
            await seeded.lifecycle.get_index("idx_missing")

    async def test_list_by_status(self, seeded: Container, repo: InMemoryRepository) -> None:
        await repo.save_index(make_index(index_id="idx_a"))
        await repo.save_index(make_index(index_id="idx_p", status=IndexStatus.PAUSED))

        active = await seeded.lifecycle.list_indexes(IndexStatus.ACTIVE)
        assert [i.index_id for i in active] == ["idx_a"]
        assert len(await seeded.lifecycle.list_indexes()) == 2

    async def test_drift_snapshot_persisted(
        self, seeded: Container, repo: InMemoryRepository, balances: FakeBalances
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = scenario_a_holdings()

        analysis = await seeded.lifecycle.calculate_current_drift("idx_1")

        stored = await repo.get_index("idx_1")
        assert stored is not None
        assert stored.total_drift == pytest.approx(analysis.max_drift)
        assert stored.total_value == pytest.approx(10_000.0)
        assert stored.current_allocation is not None
        assert len(stored.current_allocation) == 3


class TestConstruction:
    async def test_activates_index(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index(status=IndexStatus.PENDING))

        result = await seeded.lifecycle.construct_initial_portfolio("idx_1", amount=100.0)

        assert result.rebalanced
        assert result.rebalance is not None
        assert result.rebalance.reason is RebalanceReason.INITIAL_CONSTRUCTION
        assert result.rebalance.status is RebalanceStatus.COMPLETED
        assert result.rebalance.completed_trades_count == 3
        index = await repo.get_index("idx_1")
        assert index is not None
        assert index.status is IndexStatus.ACTIVE
        assert index.last_rebalance is not None

        events = await _events(seeded, transport)
        assert events["rebalance.started"] == 1
        assert events["trade.executed"] == 3
        assert events["rebalance.completed"] == 1
        assert events["index.updated"] == 1

    async def test_uses_base_balance_when_amount_missing(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
    ) -> None:
        await repo.save_index(make_index(status=IndexStatus.PENDING_FUNDING))
        balances.holdings = {"USDC": 200.0}

        result = await seeded.lifecycle.construct_initial_portfolio("idx_1")

        assert result.trades[0].amount == pytest.approx(79.2)

    async def test_invalid_allocation_rejected_without_side_effects(
        self, seeded: Container, repo: InMemoryRepository, swaps: FakeSwaps
    ) -> None:
        await repo.save_index(
            make_index(status=IndexStatus.PENDING, targets={"BTC": 50.0, "ETH": 40.0})
        )

        with pytest.raises(AllocationError):
            await seeded.lifecycle.construct_initial_portfolio("idx_1", amount=100.0)

        assert swaps.requests == []
        assert await repo.list_rebalances("idx_1") == []

    async def test_failure_records_rebalance(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        swaps: FakeSwaps,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index(status=IndexStatus.PENDING))
        swaps.outcomes = [InsufficientBalanceError("insufficient balance")]

        with pytest.raises(TradeExecutionError):
            await seeded.lifecycle.construct_initial_portfolio("idx_1", amount=100.0)

        [rebalance] = await repo.list_rebalances("idx_1")
        assert rebalance.status is RebalanceStatus.FAILED
        assert rebalance.completed_trades_count == 0
        index = await repo.get_index("idx_1")
        assert index is not None
        assert index.status is IndexStatus.PENDING

        events = await _events(seeded, transport)
        assert events["rebalance.failed"] == 1
        assert events["trade.failed"] == 1

    async def test_paused_index_rejected(
        self, seeded: Container, repo: InMemoryRepository
    ) -> None:
        await repo.save_index(make_index(status=IndexStatus.PAUSED))
        with pytest.raises(InvalidStateError):
            await seeded.lifecycle.construct_initial_portfolio("idx_1", amount=100.0)


class TestRebalancing:
    async def test_below_threshold_creates_no_record(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        swaps: FakeSwaps,
    ) -> None:
        await repo.save_index(make_index())
        # SOL 27% vs 30% target: 3pp drift
        balances.holdings = {"BTC": 0.08, "ETH": 1.1, "SOL": 27.0}

        result = await seeded.lifecycle.execute_rebalancing("idx_1")

        assert not result.rebalanced
        assert "No rebalance needed" in result.message
        assert result.rebalance is None
        assert await repo.list_rebalances("idx_1") == []
        assert swaps.requests == []

    async def test_unfunded_index_skips_rebalancing(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        swaps: FakeSwaps,
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = {}

        result = await seeded.lifecycle.execute_rebalancing("idx_1")

        assert not result.rebalanced
        assert result.rebalance is None
        assert result.analysis is not None
        assert result.analysis.rebalancing_actions == []
        assert await repo.list_rebalances("idx_1") == []
        assert await repo.list_trades(index_id="idx_1") == []
        assert swaps.requests == []

    async def test_manual_rebalance(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = scenario_a_holdings()

        result = await seeded.lifecycle.execute_rebalancing("idx_1")

        assert result.rebalanced
        assert result.rebalance is not None
        assert result.rebalance.reason is RebalanceReason.MANUAL
        assert result.rebalance.total_drift == pytest.approx(10.0)
        assert result.rebalance.trades_count == 3
        assert result.rebalance.completed_trades_count == 3
        index = await repo.get_index("idx_1")
        assert index is not None
        assert index.last_rebalance is not None

        events = await _events(seeded, transport)
        assert events["rebalance.completed"] == 1
        completed = next(p for _, p, _ in transport.calls if p["event"] == "rebalance.completed")
        assert completed["data"]["trigger"] == "manual"

    async def test_refunded_leg_continues(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        swaps: FakeSwaps,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = scenario_a_holdings()
        swaps.outcomes = [SwapStatus.REFUNDED] * 3

        result = await seeded.lifecycle.execute_rebalancing("idx_1")

        assert [(t.from_asset, t.status) for t in result.trades] == [
            ("ETH", TradeStatus.FAILED),
            ("BTC", TradeStatus.COMPLETED),
            ("USDC", TradeStatus.COMPLETED),
        ]
        assert result.trades[0].error is not None
        assert result.rebalance is not None
        assert result.rebalance.status is RebalanceStatus.COMPLETED
        assert result.rebalance.completed_trades_count == 2

        events = await _events(seeded, transport)
        assert events["trade.failed"] == 1
        assert events["trade.executed"] == 2

    async def test_all_trades_failed(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        swaps: FakeSwaps,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = scenario_a_holdings()
        swaps.outcomes = [InsufficientBalanceError("insufficient balance")] * 3

        result = await seeded.lifecycle.execute_rebalancing("idx_1")

        assert not result.rebalanced
        assert result.rebalance is not None
        assert result.rebalance.status is RebalanceStatus.FAILED
        index = await repo.get_index("idx_1")
        assert index is not None
        assert index.last_rebalance is None

        events = await _events(seeded, transport)
        assert events["rebalance.failed"] == 1

    async def test_automatic_reason_leaves_outcome_event_to_monitor(
        self,
        seeded: Container,
        repo: InMemoryRepository,
        balances: FakeBalances,
        transport: RecordingTransport,
    ) -> None:
        await repo.save_index(make_index())
        balances.holdings = scenario_a_holdings()

        result = await seeded.lifecycle.execute_rebalancing(
            "idx_1", reason=RebalanceReason.DRIFT_THRESHOLD
        )

        assert result.rebalanced
        events = await _events(seeded, transport)
        assert events["rebalance.started"] == 1
        assert events["rebalance.completed"] == 0

    async def test_paused_index_rejected(
        self, seeded: Container, repo: InMemoryRepository
    ) -> None:
        await repo.save_index(make_index(status=IndexStatus.PAUSED))
        with pytest.raises(InvalidStateError):
            await seeded.lifecycle.execute_rebalancing("idx_1")


class TestAdministration:
    async def test_create_index(
        self, seeded: Container, account: Account, transport: RecordingTransport
    ) -> None:
        index = await seeded.lifecycle.create_index(
            account.account_id,
            "Majors",
            [
                AssetAllocation(symbol="BTC", percentage=60),
                AssetAllocation(symbol="ETH", percentage=40),
            ],
        )

        assert index.status is IndexStatus.PENDING
        assert index.index_id.startswith("idx_")
        assert index.rebalancing_config.drift_threshold == 5.0
        events = await _events(seeded, transport)
        assert events["index.created"] == 1

    async def test_create_index_unsupported_asset(
        self, seeded: Container, account: Account
    ) -> None:
        with pytest.raises(UnsupportedAssetError):
            await seeded.lifecycle.create_index(
                account.account_id, "Memes", [AssetAllocation(symbol="DOGE", percentage=100)]
            )

    async def test_create_index_unknown_account(self, seeded: Container) -> None:
        with pytest.raises(NotFoundError):
            await seeded.lifecycle.create_index(
                "acc_missing", "X", [AssetAllocation(symbol="BTC", percentage=100)]
            )

    async def test_pause_and_resume(
        self, seeded: Container, repo: InMemoryRepository, transport: RecordingTransport
    ) -> None:
        await repo.save_index(make_index())

        paused = await seeded.lifecycle.pause_index("idx_1")
        assert paused.status is IndexStatus.PAUSED
        with pytest.raises(InvalidStateError):
            await seeded.lifecycle.pause_index("idx_1")

        resumed = await seeded.lifecycle.resume_index("idx_1")
        assert resumed.status is IndexStatus.ACTIVE

        events = await _events(seeded, transport)
        assert events["index.paused"] == 1
        assert events["index.resumed"] == 1

    async def test_update_index(
        self, seeded: Container, repo: InMemoryRepository, transport: RecordingTransport
    ) -> None:
        await repo.save_index(make_index())

        updated = await seeded.lifecycle.update_index(
            "idx_1",
            name="Renamed",
            rebalancing_config=RebalancingConfig(
                method=RebalancingMethod.HYBRID, drift_threshold=3.0
            ),
        )

        assert updated.name == "Renamed"
        assert updated.rebalancing_config.method is RebalancingMethod.HYBRID
        await seeded.dispatcher.drain()
        [payload] = [p for _, p, _ in transport.calls if p["event"] == "index.updated"]
        assert payload["data"]["changes"] == ["name", "rebalancing_config"]

    async def test_update_without_changes_is_silent(
        self, seeded: Container, repo: InMemoryRepository, transport: RecordingTransport
    ) -> None:
        index = make_index()
        await repo.save_index(index)

        await seeded.lifecycle.update_index("idx_1", name=index.name)

        assert await _events(seeded, transport) == Counter()

    async def test_update_rejects_bad_allocation(
        self, seeded: Container, repo: InMemoryRepository
    ) -> None:
        await repo.save_index(make_index())
        with pytest.raises(AllocationError):
            await seeded.lifecycle.update_index(
                "idx_1", target_allocation=[AssetAllocation(symbol="BTC", percentage=90)]
            )

    async def test_soft_delete(self, seeded: Container, repo: InMemoryRepository) -> None:
        await repo.save_index(make_index())

        deleted = await seeded.lifecycle.delete_index("idx_1")

        assert deleted.status is IndexStatus.DELETED
        stored = await seeded.lifecycle.get_index("idx_1")
        assert stored.status is IndexStatus.DELETED
        with pytest.raises(InvalidStateError):
            await seeded.lifecycle.update_index("idx_1", name="again")
        with pytest.raises(InvalidStateError):
            await seeded.lifecycle.calculate_current_drift("idx_1")
