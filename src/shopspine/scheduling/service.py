"""Scheduler service - the sweep driver.

Manifesto:
    One sweep per clock tick: load enabled schedules, ask the evaluator
    which are due, mark each queued and hand its id to the router. The
    sweep never waits on a job and never lets one schedule's failure stop
    the others; whatever goes wrong with a schedule ends up in that
    schedule's run-state or, failing that, in the process log.

Tags:
    shopspine, scheduling, orchestrator, sweep, service

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────┐
│  SWEEP DRIVER                                                             │
│                                                                           │
│  tick(job_type=None, now=None) → TickResult                               │
│    │                                                                      │
│    ├── repository.list_enabled(job_type)                                  │
│    └── for each schedule (isolated try/except):                           │
│          ├── evaluate(schedule, now, rearm)        not due → next         │
│          ├── tracker.mark_queued(id, now)          False   → next         │
│          ├── router.dispatch(job_type, id)                                │
│          │     ├── True   → dispatched                                    │
│          │     ├── False  → tracker.mark_unsupported  ("skipped")         │
│          │     └── raises → tracker.mark_dispatch_failed ("failed")       │
│          └── store error → logged, counted, sweep continues               │
│                                                                           │
│  start() / stop()   ThreadSchedulerBackend drives tick() every interval   │
│  trigger(id)        queue one schedule now, cron ignored, re-arm honoured │
│  health() / get_stats()                                                   │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from shopspine.core.errors import ScheduleNotFoundError, error_message
from shopspine.core.logging import get_logger
from shopspine.core.timestamps import utcnow
from shopspine.scheduling.evaluator import DEFAULT_REARM_INTERVAL, evaluate
from shopspine.scheduling.locks import LockManager
from shopspine.scheduling.models import ScheduleDefinition
from shopspine.scheduling.repository import ScheduleRepository
from shopspine.scheduling.router import DispatchRouter
from shopspine.scheduling.thread_backend import ThreadSchedulerBackend
from shopspine.scheduling.tracker import RunStateTracker

logger = get_logger(__name__)


@dataclass
class TickResult:
    """Counts for one sweep."""

    evaluated: int = 0
    due: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0
    job_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "due": self.due,
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "failed": self.failed,
            "job_type": self.job_type,
        }


@dataclass
class SchedulerStats:
    """Running totals across ticks."""

    tick_count: int = 0
    schedules_dispatched: int = 0
    schedules_skipped: int = 0
    schedules_failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "schedules_dispatched": self.schedules_dispatched,
            "schedules_skipped": self.schedules_skipped,
            "schedules_failed": self.schedules_failed,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    backend: dict[str, Any]
    schedules_enabled: int = 0
    active_locks: int = 0
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "schedules_enabled": self.schedules_enabled,
            "active_locks": self.active_locks,
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Sweep driver.

    Example:
        >>> service = SchedulerService(repo, tracker, DispatchRouter(queue))
        >>> result = service.tick()
        >>> print(f"Dispatched {result.dispatched} schedule(s).")
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        tracker: RunStateTracker,
        router: DispatchRouter,
        *,
        backend: ThreadSchedulerBackend | None = None,
        lock_manager: LockManager | None = None,
        interval_seconds: float = 60.0,
        rearm_interval: timedelta = DEFAULT_REARM_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.tracker = tracker
        self.router = router
        self.backend = backend or ThreadSchedulerBackend(name="sweep")
        self.lock_manager = lock_manager
        self.interval = interval_seconds
        self.rearm_interval = rearm_interval
        self._clock = clock
        self._stats = SchedulerStats()
        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        if self._running:
            logger.warning("scheduler_service_already_running")
            return
        logger.info("scheduler_service_starting", interval_seconds=self.interval)
        self.backend.start(self._on_tick, self.interval)
        self._running = True

    def stop(self) -> None:
        if not self._running:
            return
        self.backend.stop()
        self._running = False
        logger.info("scheduler_service_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _on_tick(self) -> None:
        if self.lock_manager is not None:
            self.lock_manager.cleanup_expired()
        self.tick()

    # === Sweep ===

    def tick(self, job_type: str | None = None, now: datetime | None = None) -> TickResult:
        """Evaluate every enabled schedule once and dispatch the due ones."""
        now = now or self._clock()
        result = TickResult(job_type=job_type)
        self._stats.tick_count += 1
        self._stats.last_tick = now

        schedules = self.repository.list_enabled(job_type)
        for schedule in schedules:
            result.evaluated += 1
            try:
                self._process(schedule, now, result)
            except Exception as e:
                result.failed += 1
                self._stats.last_error = error_message(e)
                logger.exception(
                    "schedule_processing_failed",
                    schedule_id=schedule.id,
                    job_type=schedule.job_type,
                )

        self._stats.schedules_dispatched += result.dispatched
        self._stats.schedules_skipped += result.skipped
        self._stats.schedules_failed += result.failed
        logger.info("sweep_completed", **result.to_dict())
        return result

    def _process(self, schedule: ScheduleDefinition, now: datetime, result: TickResult) -> None:
        decision = evaluate(schedule, now, self.rearm_interval)
        if not decision.due:
            logger.debug("schedule_not_due", schedule_id=schedule.id, reason=decision.reason)
            return
        result.due += 1
        self._queue_and_dispatch(schedule, now, result)

    def _queue_and_dispatch(self, schedule: ScheduleDefinition, now: datetime, result: TickResult) -> bool:
        if not self.tracker.mark_queued(schedule.id, now):
            logger.debug("schedule_already_queued", schedule_id=schedule.id)
            return False

        try:
            dispatched = self.router.dispatch(schedule.job_type, schedule.id)
        except Exception as e:
            result.failed += 1
            logger.exception("schedule_enqueue_failed", schedule_id=schedule.id, job_type=schedule.job_type)
            self.tracker.mark_dispatch_failed(schedule.id, error_message(e), now)
            return False

        if not dispatched:
            result.skipped += 1
            logger.warning("schedule_unsupported", schedule_id=schedule.id, job_type=schedule.job_type)
            self.tracker.mark_unsupported(schedule.id, now)
            return False

        result.dispatched += 1
        logger.info("schedule_dispatched", schedule_id=schedule.id, job_type=schedule.job_type)
        return True

    # === Manual operations ===

    def trigger(self, schedule_id: str, now: datetime | None = None) -> TickResult:
        """Queue one schedule regardless of its cron expression.

        Disabled schedules and schedules inside the re-arm interval are not
        queued (the store rejects them).
        """
        schedule = self.repository.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        now = now or self._clock()
        result = TickResult(job_type=schedule.job_type, evaluated=1, due=1)
        self._queue_and_dispatch(schedule, now, result)
        return result

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        active_locks = len(self.lock_manager.list_active()) if self.lock_manager is not None else 0
        backend = self.backend.health()
        return SchedulerHealth(
            healthy=bool(backend["healthy"]),
            backend=backend,
            schedules_enabled=self.repository.count_enabled(),
            active_locks=active_locks,
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()


__all__ = ["TickResult", "SchedulerStats", "SchedulerHealth", "SchedulerService"]
