"""Wiring: build the whole scheduling engine from one connection and settings.

::

    build_engine(conn, settings, inline=False)
      ScheduleRepository ── RunStateTracker(rearm) ──┐
      LockManager ── OverlapGuard(lock_ttl) ─────────┼── JobWorker
      JobRegistry ───────────────────────────────────┘      │
      InlineWorkQueue | ThreadPoolWorkQueue(worker.execute) ◄┘
      DispatchRouter(queue, registry)
      SchedulerService(repository, tracker, router, interval, rearm)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from shopspine.core.dialect import Dialect
from shopspine.core.protocols import Connection
from shopspine.core.settings import SchedulerSettings, get_settings
from shopspine.core.timestamps import utcnow
from shopspine.scheduling.guard import OverlapGuard
from shopspine.scheduling.locks import LockManager
from shopspine.scheduling.queue import InlineWorkQueue, ThreadPoolWorkQueue
from shopspine.scheduling.repository import ScheduleRepository
from shopspine.scheduling.router import DispatchRouter, JobRegistry, get_default_registry
from shopspine.scheduling.service import SchedulerService
from shopspine.scheduling.tracker import RunStateTracker
from shopspine.scheduling.worker import JobWorker


@dataclass
class SchedulingEngine:
    settings: SchedulerSettings
    repository: ScheduleRepository
    locks: LockManager
    guard: OverlapGuard
    tracker: RunStateTracker
    registry: JobRegistry
    worker: JobWorker
    queue: InlineWorkQueue | ThreadPoolWorkQueue
    router: DispatchRouter
    service: SchedulerService

    def close(self) -> None:
        """Stop the clock and drain queued work."""
        self.service.stop()
        if isinstance(self.queue, ThreadPoolWorkQueue):
            self.queue.shutdown(wait=True)


def build_engine(
    conn: Connection,
    settings: SchedulerSettings | None = None,
    *,
    registry: JobRegistry | None = None,
    inline: bool = False,
    dialect: Dialect | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> SchedulingEngine:
    """Assemble every scheduling component over ``conn``.

    ``inline=True`` runs jobs synchronously inside the sweep (tests and
    one-shot CLI ticks); otherwise jobs go to a thread pool.
    """
    settings = settings or get_settings()
    registry = registry if registry is not None else get_default_registry()
    rearm = timedelta(seconds=settings.rearm_interval_seconds)

    repository = ScheduleRepository(conn, dialect)
    locks = LockManager(conn, dialect, clock=clock)
    guard = OverlapGuard(locks, settings.lock_ttl_seconds)
    tracker = RunStateTracker(
        repository, rearm, clock, running_timeout=timedelta(seconds=settings.lock_ttl_seconds)
    )
    worker = JobWorker(repository, tracker, guard, registry, clock=clock)
    if inline:
        queue: InlineWorkQueue | ThreadPoolWorkQueue = InlineWorkQueue(worker.execute)
    else:
        queue = ThreadPoolWorkQueue(worker.execute, max_workers=settings.worker_max_workers)
    router = DispatchRouter(queue, registry)
    service = SchedulerService(
        repository,
        tracker,
        router,
        lock_manager=locks,
        interval_seconds=settings.tick_interval_seconds,
        rearm_interval=rearm,
        clock=clock,
    )
    return SchedulingEngine(
        settings=settings,
        repository=repository,
        locks=locks,
        guard=guard,
        tracker=tracker,
        registry=registry,
        worker=worker,
        queue=queue,
        router=router,
        service=service,
    )


__all__ = ["SchedulingEngine", "build_engine"]
