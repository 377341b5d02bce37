"""드리프트 모니터와 주기 작업 스케줄러."""

from rebalancer.monitor.drift_monitor import DriftMonitorJob, MonitorRunSummary, should_evaluate
from rebalancer.monitor.scheduler import JobScheduler, JobStatus

__all__ = ["DriftMonitorJob", "JobScheduler", "JobStatus", "MonitorRunSummary", "should_evaluate"]
