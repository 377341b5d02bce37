"""JobScheduler — asyncio 기반 주기 작업 스케줄러.

각 작업은 독립 asyncio task 루프로 실행됩니다 (interval 대기 → handler 실행).
동일 작업의 tick은 작업별 lock으로 직렬화되어 겹치지 않으며,
handler 예외는 로깅 후 다음 tick을 계속합니다 (프로세스 중단 없음).

Rules Applied:
    - EDA 패턴: asyncio task lifecycle
    - #10 Python Standards: Async patterns, type hints
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeAlias

from loguru import logger
from pydantic import BaseModel

from rebalancer.core.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

JobHandler: TypeAlias = "Callable[[], Awaitable[Any]]"


class JobStatus(BaseModel):
    """작업 상태 스냅샷."""

    name: str
    registered: bool
    running: bool
    enabled: bool
    interval_seconds: float
    run_count: int = 0
    failure_count: int = 0
    last_run_at: datetime | None = None
    last_duration_seconds: float | None = None
    last_error: str | None = None


@dataclass
class _Job:
    """작업별 내부 상태."""

    name: str
    handler: JobHandler
    interval: float
    enabled: bool
    run_immediately: bool = False
    task: asyncio.Task[None] | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    run_count: int = 0
    failure_count: int = 0
    last_run_at: datetime | None = None
    last_duration: float | None = None
    last_error: str | None = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class JobScheduler:
    """주기 작업 스케줄러."""

    def __init__(self) -> None:
        self._jobs: dict[str, _Job] = {}

    def register_job(
        self,
        name: str,
        handler: JobHandler,
        interval_seconds: float,
        *,
        enabled: bool = True,
        run_immediately: bool = False,
    ) -> None:
        """작업 등록 (enabled면 즉시 시작, 이벤트 루프 필요).

        Args:
            name: 작업 이름 (중복 등록은 무시)
            handler: 인자 없는 async callable
            interval_seconds: 실행 주기 (초)
            enabled: 등록 즉시 시작 여부
            run_immediately: 첫 tick을 대기 없이 실행
        """
        if name in self._jobs:
            logger.warning("Job {} already registered, skipping", name)
            return
        _check_interval(interval_seconds)

        self._jobs[name] = _Job(
            name=name,
            handler=handler,
            interval=interval_seconds,
            enabled=enabled,
            run_immediately=run_immediately,
        )
        if enabled:
            self.start_job(name)
        else:
            logger.info("Job {} registered but not started (disabled)", name)

    def start_job(self, name: str) -> None:
        """작업 루프 시작."""
        job = self._job(name)
        if job.running:
            logger.warning("Job {} already running", name)
            return
        job.task = asyncio.create_task(self._loop(job), name=f"job:{name}")
        logger.info("Job {} started (every {:.0f}s)", name, job.interval)

    async def stop_job(self, name: str) -> None:
        """작업 루프 중지 (진행 중 tick은 취소)."""
        job = self._job(name)
        if not job.running:
            logger.debug("Job {} not running", name)
            return
        await _cancel(job)
        logger.info("Job {} stopped", name)

    async def stop_all(self) -> None:
        """모든 작업 중지."""
        logger.info("Stopping all jobs...")
        for job in self._jobs.values():
            if job.running:
                await _cancel(job)
                logger.info("Job {} stopped", job.name)

    async def update_interval(self, name: str, interval_seconds: float) -> None:
        """실행 주기 변경 (실행 중이면 재시작)."""
        job = self._job(name)
        _check_interval(interval_seconds)
        was_running = job.running
        if was_running:
            await _cancel(job)
        job.interval = interval_seconds
        if was_running and job.enabled:
            self.start_job(name)
        logger.info("Job {} interval updated to {:.0f}s", name, interval_seconds)

    async def set_enabled(self, name: str, enabled: bool) -> None:
        """작업 활성/비활성."""
        job = self._job(name)
        job.enabled = enabled
        if enabled:
            self.start_job(name)
        else:
            await self.stop_job(name)
        logger.info("Job {} {}", name, "enabled" if enabled else "disabled")

    async def run_now(self, name: str) -> Any:
        """즉시 1회 실행 (진행 중 tick이 있으면 끝날 때까지 대기).

        Returns:
            handler 반환값 (실패 시 None)
        """
        return await self._tick(self._job(name))

    def job_status(self, name: str) -> JobStatus:
        """단일 작업 상태 (미등록이면 registered=False)."""
        job = self._jobs.get(name)
        if job is None:
            return JobStatus(
                name=name, registered=False, running=False, enabled=False, interval_seconds=0
            )
        return JobStatus(
            name=name,
            registered=True,
            running=job.running,
            enabled=job.enabled,
            interval_seconds=job.interval,
            run_count=job.run_count,
            failure_count=job.failure_count,
            last_run_at=job.last_run_at,
            last_duration_seconds=job.last_duration,
            last_error=job.last_error,
        )

    def all_jobs_status(self) -> list[JobStatus]:
        """전체 작업 상태."""
        return [self.job_status(name) for name in self._jobs]

    # ─── Internals ────────────────────────────────────────────

    def _job(self, name: str) -> _Job:
        job = self._jobs.get(name)
        if job is None:
            msg = f"Job {name} not found"
            raise NotFoundError(msg)
        return job

    async def _loop(self, job: _Job) -> None:
        if job.run_immediately:
            await self._tick(job)
        while True:
            await asyncio.sleep(job.interval)
            await self._tick(job)

    async def _tick(self, job: _Job) -> Any:
        async with job.lock:
            logger.info("Starting job: {}", job.name)
            started = time.monotonic()
            job.last_run_at = datetime.now(UTC)
            job.run_count += 1
            try:
                result = await job.handler()
            except Exception as e:
                job.failure_count += 1
                job.last_error = str(e)
                job.last_duration = time.monotonic() - started
                logger.exception("Job {} failed after {:.2f}s", job.name, job.last_duration)
                return None
            job.last_error = None
            job.last_duration = time.monotonic() - started
            logger.info("Job {} completed in {:.2f}s", job.name, job.last_duration)
            return result


def _check_interval(interval_seconds: float) -> None:
    if interval_seconds <= 0:
        msg = "Job interval must be positive"
        raise ValidationError(msg, context={"interval": interval_seconds})


async def _cancel(job: _Job) -> None:
    if job.task is None:
        return
    job.task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await job.task
    job.task = None
