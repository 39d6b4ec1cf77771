from __future__ import annotations

from datetime import UTC
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from aaa_core.exceptions import AAACoreError, ValidationError
from aaa_core.utils.logger import get_logger

from .job import RetentionJob, RetentionResult

_log = get_logger(__name__, component="retention_scheduler")

JOB_ID = "accounting_retention"


class RetentionScheduler:
    """Run :class:`RetentionJob` periodically on a background thread.

    ``max_instances=1`` keeps sweeps from overlapping and ``coalesce`` folds
    a backlog of missed runs into a single one.
    """

    def __init__(
        self,
        job: RetentionJob,
        *,
        retention_days: int,
        interval_hours: float = 168,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        if retention_days < 0:
            raise ValidationError(
                "Retention days must not be negative",
                field="retention_days",
                value=retention_days,
            )
        if interval_hours <= 0:
            raise ValidationError(
                "Retention interval must be positive",
                field="interval_hours",
                value=interval_hours,
            )
        self.job = job
        self.retention_days = int(retention_days)
        self.interval_hours = float(interval_hours)
        self.last_result: RetentionResult | None = None
        self.scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 300},
            timezone=UTC,
        )

    @classmethod
    def from_config(
        cls, job: RetentionJob, retention_cfg: dict[str, Any]
    ) -> RetentionScheduler:
        return cls(
            job,
            retention_days=int(retention_cfg["days"]),
            interval_hours=float(retention_cfg["interval_hours"]),
        )

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        self.scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(hours=self.interval_hours, timezone=UTC),
            id=JOB_ID,
            name="Accounting session retention",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        _log.info(
            "Scheduled accounting retention",
            event="aaa.retention.scheduled",
            retention_days=self.retention_days,
            interval_hours=self.interval_hours,
        )

    def stop(self, wait: bool = False) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            _log.info("Retention scheduler stopped", event="aaa.retention.unscheduled")

    def run_once(self) -> RetentionResult | None:
        """One sweep; failures are logged by the job and reported as None."""
        try:
            self.last_result = self.job.run(self.retention_days)
        except AAACoreError as exc:
            _log.warning(
                "Scheduled retention run failed",
                event="aaa.retention.scheduled_run_failed",
                error_code=exc.error_code,
                error=exc.message,
            )
            return None
        return self.last_result
