"""Job worker: executes one queued schedule.

Manifesto:
    The sweep hands over a schedule id and forgets about it. Everything
    that happens afterwards is the worker's job: re-read the schedule,
    respect a disable that happened after dispatch, take the job family's
    overlap lock without waiting, run the handler, and write the outcome.
    A handler that throws must still leave the row ``failed``.

ARCHITECTURE
────────────
::

    JobWorker.execute(job_type, schedule_id)
      │
      ├── schedule missing          → log, return None
      ├── no handler / type changed → skipped
      ├── schedule disabled         → skipped "schedule disabled"
      │
      └── OverlapGuard.with_lock("job-lock:{kind}")
            ├── contended → skipped "{kind} already running, skipping"
            └── acquired  → tracker.track(id)
                              running → handler(ctx) → completed(message)
                                                    ↘ failed(error) + re-raise

Tags:
    shopspine, execution, worker, overlap-guard

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from shopspine.core.logging import LogContext, get_logger
from shopspine.core.timestamps import utcnow
from shopspine.scheduling.catalog import JobCatalog, get_catalog
from shopspine.scheduling.guard import OverlapGuard, lock_name_for
from shopspine.scheduling.models import RunStatus, ScheduleDefinition
from shopspine.scheduling.repository import ScheduleRepository
from shopspine.scheduling.router import JobContext, JobHandler, JobRegistry, get_default_registry
from shopspine.scheduling.tracker import NO_HANDLER_MESSAGE, RunStateTracker

logger = get_logger(__name__)

DISABLED_MESSAGE = "schedule disabled"


def already_running_message(kind: str) -> str:
    return f"{kind} already running, skipping"


class JobWorker:
    """Executes queued schedules against registered handlers.

    Example:
        >>> worker = JobWorker(repo, tracker, OverlapGuard(LockManager(conn)))
        >>> queue = ThreadPoolWorkQueue(worker.execute)
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        tracker: RunStateTracker,
        guard: OverlapGuard,
        registry: JobRegistry | None = None,
        catalog: JobCatalog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.tracker = tracker
        self.guard = guard
        self.registry = registry if registry is not None else get_default_registry()
        self.catalog = catalog or get_catalog()
        self._clock = clock

    def execute(self, job_type: str, schedule_id: str) -> RunStatus | None:
        """Run one queued schedule and return the status it ended in.

        Exceptions from the handler propagate after ``failed`` is written.
        """
        schedule = self.repository.get(schedule_id)
        if schedule is None:
            logger.info("queued_schedule_missing", schedule_id=schedule_id, job_type=job_type)
            return None

        handler = self.registry.find(schedule.job_type)
        if handler is None or schedule.job_type != job_type:
            logger.warning(
                "queued_job_unsupported",
                schedule_id=schedule_id,
                job_type=job_type,
                schedule_job_type=schedule.job_type,
            )
            self.tracker.mark_skipped(schedule_id, NO_HANDLER_MESSAGE)
            return RunStatus.SKIPPED

        if not schedule.enabled:
            logger.info("queued_schedule_disabled", schedule_id=schedule_id, job_type=job_type)
            self.tracker.mark_skipped(schedule_id, DISABLED_MESSAGE)
            return RunStatus.SKIPPED

        ran = self.guard.with_lock(
            lock_name_for(handler.kind),
            lambda: self._run(handler, schedule),
            ttl_seconds=handler.lock_ttl_seconds,
        )
        if not ran:
            logger.info(
                "job_already_running_skipping",
                schedule_id=schedule_id,
                job_type=job_type,
                kind=handler.kind,
            )
            self.tracker.mark_skipped(schedule_id, already_running_message(handler.kind))
            return RunStatus.SKIPPED
        return RunStatus.COMPLETED

    def _run(self, handler: JobHandler, schedule: ScheduleDefinition) -> None:
        with LogContext(schedule_id=schedule.id, job_type=schedule.job_type):
            context = JobContext(
                schedule=schedule,
                options=self._options_for(schedule),
                started_at=self._clock(),
                logger=logger.bind(schedule_id=schedule.id, job_type=schedule.job_type),
            )
            logger.info("job_started", kind=handler.kind)
            with self.tracker.track(schedule.id, run_at=schedule.last_run_at) as run:
                result = handler.fn(context)
                run.message = _summary(result)
            logger.info("job_completed", kind=handler.kind, message=run.message)

    def _options_for(self, schedule: ScheduleDefinition) -> dict[str, Any]:
        if self.catalog.contains(schedule.job_type):
            return self.catalog.sanitize_options(schedule.job_type, schedule.options) or {}
        return dict(schedule.options)


def _summary(result: Any) -> str | None:
    if result is None:
        return None
    return result if isinstance(result, str) else str(result)


__all__ = ["DISABLED_MESSAGE", "already_running_message", "JobWorker"]
