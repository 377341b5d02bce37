"""Shared fixtures for tests.

외부 Port(오라클, 스왑 서비스, 잔고, 웹훅 전송)의 fake 구현과
공통 Index/Account 픽스처를 제공합니다.

Rules Applied:
    - #17 Testing Standards: Pytest fixtures
"""

from __future__ import annotations

from typing import Any

import pytest

from rebalancer.app import Container, build_container
from rebalancer.config.settings import RebalancerSettings
from rebalancer.execution.ports import SwapSubmission
from rebalancer.market.price_service import PriceService
from rebalancer.models.index import (
    Account,
    AssetAllocation,
    Index,
    RebalancingConfig,
    SupportedAsset,
)
from rebalancer.models.types import IndexStatus, RebalancingMethod, SwapStatus
from rebalancer.storage.repository import InMemoryRepository

# ---------------------------------------------------------------------------
# 디렉토리 경로 → pytest 마커 자동 매핑
# ---------------------------------------------------------------------------
_DIR_MARKER_MAP: dict[str, str] = {
    "/cli/": "integration",
    "/integrations/": "integration",
    "/storage/": "integration",
    "/core/": "unit",
    "/config/": "unit",
    "/models/": "unit",
    "/market/": "unit",
    "/portfolio/": "unit",
    "/execution/": "unit",
    "/lifecycle/": "unit",
    "/monitor/": "unit",
    "/notification/": "unit",
}


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """디렉토리 경로 기반 자동 마커 부여."""
    for item in items:
        fspath = str(item.fspath)
        for dir_pattern, marker_name in _DIR_MARKER_MAP.items():
            if dir_pattern in fspath:
                item.add_marker(getattr(pytest.mark, marker_name))
                break


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

SUPPORTED_ASSETS = [
    SupportedAsset(
        symbol="USDC", chain="eth", asset_id="nep141:usdc.omft.near", decimals=6, price=1.0
    ),
    SupportedAsset(
        symbol="BTC", chain="btc", asset_id="nep141:btc.omft.near", decimals=8, price=50_000.0
    ),
    SupportedAsset(
        symbol="ETH", chain="eth", asset_id="nep141:eth.omft.near", decimals=18, price=3_000.0
    ),
    SupportedAsset(
        symbol="SOL", chain="sol", asset_id="nep141:sol.omft.near", decimals=9, price=100.0
    ),
]

DEFAULT_PRICES = {a.symbol: a.price for a in SUPPORTED_ASSETS}


async def no_sleep(_: float) -> None:
    """대기 없는 sleep."""


class FakeOracle:
    """dict 기반 PriceOracle."""

    def __init__(self, prices: dict[str, float | None] | None = None) -> None:
        self.prices: dict[str, float | None] = dict(DEFAULT_PRICES if prices is None else prices)
        self.assets = list(SUPPORTED_ASSETS)
        self.price_calls: list[str] = []

    async def get_price(self, symbol: str) -> float | None:
        self.price_calls.append(symbol)
        return self.prices.get(symbol)

    async def get_supported_assets(self) -> list[SupportedAsset]:
        return self.assets


class FakeSwaps:
    """스크립트 기반 SwapExecutionService.

    request_swap() 호출마다 outcomes에서 하나를 꺼냅니다.
    Exception이면 제출 시 발생, SwapStatus면 한 번 PROCESSING을 거친 뒤 해당 상태.
    outcomes가 비면 SUCCESS.
    """

    def __init__(self, outcomes: list[SwapStatus | Exception] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.requests: list[dict[str, Any]] = []
        self._final: dict[str, SwapStatus] = {}
        self._polled: dict[str, int] = {}

    async def request_swap(
        self,
        origin_asset: str,
        destination_asset: str,
        amount: int,
        recipient: str,
        account_id: str,
    ) -> SwapSubmission:
        self.requests.append(
            {
                "origin_asset": origin_asset,
                "destination_asset": destination_asset,
                "amount": amount,
                "recipient": recipient,
                "account_id": account_id,
            }
        )
        outcome = self.outcomes.pop(0) if self.outcomes else SwapStatus.SUCCESS
        if isinstance(outcome, Exception):
            raise outcome
        reference = f"deposit-{len(self.requests)}"
        self._final[reference] = outcome
        return SwapSubmission(
            settlement_reference=reference,
            expected_output="1000",
            tx_hash=f"tx-{len(self.requests)}",
        )

    async def poll_status(self, settlement_reference: str) -> SwapStatus:
        count = self._polled.get(settlement_reference, 0)
        self._polled[settlement_reference] = count + 1
        if count == 0:
            return SwapStatus.PROCESSING
        return self._final[settlement_reference]


class FakeSigner:
    """입금 전송을 기록하는 SigningProvider."""

    def __init__(self) -> None:
        self.transfers: list[tuple[str, str, int, str]] = []

    async def transfer_to_deposit(
        self, account_id: str, asset_id: str, amount: int, deposit_address: str
    ) -> str:
        self.transfers.append((account_id, asset_id, amount, deposit_address))
        return f"tx-{len(self.transfers)}"


class FakeBalances:
    """고정 보유량 BalanceProvider."""

    def __init__(self, holdings: dict[str, float] | None = None) -> None:
        self.holdings = dict(holdings or {})

    async def get_holdings(self, account: Account) -> dict[str, float]:
        return dict(self.holdings)


class RecordingTransport:
    """호출을 기록하는 NotificationTransport (기본 200)."""

    def __init__(self, status: int = 200, error: Exception | None = None) -> None:
        self.status = status
        self.error = error
        self.calls: list[tuple[str, dict[str, Any], dict[str, str]]] = []

    async def post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> int:
        self.calls.append((url, payload, headers))
        if self.error is not None:
            raise self.error
        return self.status

    def events(self) -> list[str]:
        return [payload["event"] for _, payload, _ in self.calls]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> RebalancerSettings:
    """환경 변수와 무관한 기본 설정."""
    return RebalancerSettings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def prices(oracle: FakeOracle) -> PriceService:
    return PriceService(oracle)


@pytest.fixture
def swaps() -> FakeSwaps:
    return FakeSwaps()


@pytest.fixture
def balances() -> FakeBalances:
    return FakeBalances()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def account() -> Account:
    return Account(account_id="acc_1", owner_id="user_1", wallet_address="0xABCDEF")


def make_index(
    *,
    index_id: str = "idx_1",
    status: IndexStatus = IndexStatus.ACTIVE,
    targets: dict[str, float] | None = None,
    method: RebalancingMethod = RebalancingMethod.DRIFT,
    threshold: float = 5.0,
) -> Index:
    """테스트용 Index 생성 (기본 BTC 40 / ETH 30 / SOL 30)."""
    targets = targets or {"BTC": 40.0, "ETH": 30.0, "SOL": 30.0}
    return Index(
        index_id=index_id,
        account_id="acc_1",
        name=f"Index {index_id}",
        status=status,
        target_allocation=[AssetAllocation(symbol=s, percentage=p) for s, p in targets.items()],
        rebalancing_config=RebalancingConfig(method=method, drift_threshold=threshold),
    )


def scenario_a_holdings() -> dict[str, float]:
    """$10,000 포트폴리오: BTC 44% / ETH 36% / SOL 20%."""
    return {"BTC": 4_400 / 50_000, "ETH": 3_600 / 3_000, "SOL": 2_000 / 100}


@pytest.fixture
def container(
    settings: RebalancerSettings,
    repo: InMemoryRepository,
    oracle: FakeOracle,
    swaps: FakeSwaps,
    balances: FakeBalances,
    transport: RecordingTransport,
) -> Container:
    """fake Port로 조립한 Container (대기 없음)."""
    return build_container(
        settings,
        repository=repo,
        oracle=oracle,
        swaps=swaps,
        balances=balances,
        transport=transport,
        sleep=no_sleep,
    )
