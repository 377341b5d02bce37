"""Composition root — 서비스 조립과 장기 실행 런타임.

build_container()는 Port 구현체를 받아 코어 서비스를 조립하고 (테스트에서 fake 주입),
open_container()는 설정에 따라 SQLite/1-Click/NEAR RPC/httpx 어댑터를 생성합니다.
run_service()는 드리프트 모니터를 스케줄러에 등록하고 종료 신호까지 대기합니다.

Rules Applied:
    - Dependency injection: 모듈 싱글톤 대신 인스턴스 주입
    - EDA 패턴: asyncio task lifecycle, graceful shutdown
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from rebalancer.config.settings import RebalancerSettings, get_settings
from rebalancer.execution.trade_executor import TradeExecutor
from rebalancer.integrations.intents_balances import IntentsBalanceReader
from rebalancer.integrations.one_click import OneClickClient
from rebalancer.integrations.signer import load_signer
from rebalancer.lifecycle.index_service import IndexLifecycleService
from rebalancer.market.price_service import PriceService
from rebalancer.monitor.drift_monitor import DriftMonitorJob
from rebalancer.monitor.scheduler import JobScheduler
from rebalancer.notification.dispatcher import WebhookDispatcher
from rebalancer.notification.transport import HttpxTransport
from rebalancer.portfolio.drift_calculator import DriftCalculator
from rebalancer.portfolio.portfolio_service import PortfolioService
from rebalancer.storage.database import Database
from rebalancer.storage.sqlite_repository import SqliteRepository

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from rebalancer.execution.ports import BalanceProvider, PriceOracle, SwapExecutionService
    from rebalancer.notification.transport import NotificationTransport
    from rebalancer.storage.repository import Repository


@dataclass
class Container:
    """조립된 서비스 묶음."""

    settings: RebalancerSettings
    repository: Repository
    prices: PriceService
    calculator: DriftCalculator
    executor: TradeExecutor
    portfolio: PortfolioService
    dispatcher: WebhookDispatcher
    lifecycle: IndexLifecycleService
    monitor: DriftMonitorJob
    scheduler: JobScheduler
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)

    async def aclose(self) -> None:
        """스케줄러 중지 → 남은 웹훅 전송 대기 → 어댑터 종료."""
        await self.scheduler.stop_all()
        await self.dispatcher.drain()
        for close in reversed(self.closers):
            await close()
        self.closers.clear()


def build_container(
    settings: RebalancerSettings,
    *,
    repository: Repository,
    oracle: PriceOracle,
    swaps: SwapExecutionService,
    balances: BalanceProvider,
    transport: NotificationTransport,
    prices: PriceService | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Container:
    """Port 구현체로 코어 서비스 조립.

    Args:
        settings: 설정
        repository: 저장소
        oracle: 가격 오라클
        swaps: 스왑 실행 서비스
        balances: 잔고 조회
        transport: 웹훅 전송
        prices: 미리 만든 PriceService (잔고 리더와 캐시 공유 시)
        sleep: 재시도/폴링/백오프 대기 함수

    Returns:
        Container
    """
    prices = prices or PriceService(oracle, ttl_seconds=settings.price_cache_ttl)
    calculator = DriftCalculator(prices)
    executor = TradeExecutor(
        repository,
        prices,
        swaps,
        base_currency=settings.base_currency,
        max_retries=settings.trade_max_retries,
        retry_delay=settings.trade_retry_delay,
        poll_interval=settings.settlement_poll_interval,
        settlement_timeout=settings.settlement_timeout,
        sleep=sleep,
    )
    portfolio = PortfolioService(
        executor,
        prices,
        base_currency=settings.base_currency,
        construction_buffer=settings.construction_buffer,
    )
    dispatcher = WebhookDispatcher(
        repository,
        transport,
        max_attempts=settings.webhook_max_attempts,
        backoff_base=settings.webhook_backoff_base,
        disable_threshold=settings.webhook_disable_threshold,
        sleep=sleep,
    )
    lifecycle = IndexLifecycleService(
        repository,
        prices,
        calculator,
        portfolio,
        balances,
        dispatcher,
        default_drift_threshold=settings.default_drift_threshold,
    )
    monitor = DriftMonitorJob(repository, lifecycle, dispatcher)
    return Container(
        settings=settings,
        repository=repository,
        prices=prices,
        calculator=calculator,
        executor=executor,
        portfolio=portfolio,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        monitor=monitor,
        scheduler=JobScheduler(),
    )


@asynccontextmanager
async def open_container(settings: RebalancerSettings | None = None) -> AsyncIterator[Container]:
    """운영 어댑터로 Container 생성 (종료 시 자원 정리).

    Example:
        >>> async with open_container() as container:
        ...     await container.lifecycle.execute_rebalancing("idx_1a2b")
    """
    settings = settings or get_settings()

    signer = load_signer(settings.signer_factory) if settings.signer_factory else None
    if signer is None:
        logger.warning("No signer factory configured: swaps will be rejected")

    database = Database(str(settings.database_path))
    await database.connect()

    client = OneClickClient(
        settings.intents_api_url,
        jwt_token=settings.intents_jwt_token.get_secret_value() or None,
        slippage_bps=settings.slippage_tolerance_bps,
        timeout=settings.request_timeout,
        signer=signer,
    )
    prices = PriceService(client, ttl_seconds=settings.price_cache_ttl)
    balances = IntentsBalanceReader(
        prices,
        settings.near_rpc_url,
        contract_id=settings.intents_contract_id,
        timeout=settings.request_timeout,
    )
    transport = HttpxTransport(timeout=settings.webhook_timeout)

    container = build_container(
        settings,
        repository=SqliteRepository(database),
        oracle=client,
        swaps=client,
        balances=balances,
        transport=transport,
        prices=prices,
    )
    container.closers.extend([database.close, client.aclose, balances.aclose, transport.aclose])
    try:
        yield container
    finally:
        await container.aclose()


def register_jobs(container: Container) -> None:
    """드리프트 모니터를 스케줄러에 등록 (이벤트 루프 필요)."""
    settings = container.settings
    container.scheduler.register_job(
        DriftMonitorJob.name,
        container.monitor.execute,
        settings.drift_monitor_interval,
        enabled=settings.drift_monitor_enabled,
    )


async def run_service(container: Container, stop_event: asyncio.Event | None = None) -> None:
    """스케줄러를 시작하고 SIGINT/SIGTERM 또는 stop_event까지 대기."""
    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    register_jobs(container)
    logger.info(
        "Rebalancer service running (drift monitor every {:.0f}s, enabled={})",
        container.settings.drift_monitor_interval,
        container.settings.drift_monitor_enabled,
    )
    try:
        await stop.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)
        await container.scheduler.stop_all()
        await container.dispatcher.drain()
        logger.info("Rebalancer service stopped")
