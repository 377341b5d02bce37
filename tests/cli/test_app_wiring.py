"""Tests for the composition root (container, job registration, service loop)."""

from __future__ import annotations

import asyncio

from rebalancer.app import Container, register_jobs, run_service
from rebalancer.config.settings import RebalancerSettings
from rebalancer.monitor.drift_monitor import DriftMonitorJob


class TestRegisterJobs:
    async def test_drift_monitor_registered(self, container: Container) -> None:
        register_jobs(container)

        status = container.scheduler.job_status(DriftMonitorJob.name)
        assert status.registered
        assert status.running
        assert status.interval_seconds == 300.0
        await container.aclose()

    async def test_disabled_by_settings(
        self, container: Container, settings: RebalancerSettings
    ) -> None:
        container.settings = settings.model_copy(update={"drift_monitor_enabled": False})
        register_jobs(container)

        status = container.scheduler.job_status(DriftMonitorJob.name)
        assert status.registered
        assert not status.running


class TestRunService:
    async def test_stops_on_event(self, container: Container) -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(run_service(container, stop))
        await asyncio.sleep(0)
        assert container.scheduler.job_status(DriftMonitorJob.name).running

        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert not container.scheduler.job_status(DriftMonitorJob.name).running


class TestContainer:
    async def test_aclose_runs_closers_once(self, container: Container) -> None:
        closed: list[str] = []

        async def close_a() -> None:
            closed.append("a")

        async def close_b() -> None:
            closed.append("b")

        container.closers.extend([close_a, close_b])
        await container.aclose()
        await container.aclose()

        assert closed == ["b", "a"]
