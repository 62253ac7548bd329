"""Retry sweep: re-enqueue failed snapshot/import work.

Manifesto:
    A failed import is not retried by the scheduler itself. This sweep runs
    on its own clock, under its own job-family lock, and hands every
    eligible item back to the queue exactly once per pass. Items younger
    than the minimum age are left alone so the sweep never races an
    attempt that is still in flight.

Tags:
    shopspine, retry, sweep, failed-work, overlap-guard

Doc-Types:
    api-reference


    RetrySweep.run(now)
      └── OverlapGuard.with_lock("job-lock:retry_failed_snapshots", ttl=600)
            ├── contended → RetrySweepResult(ran=False)
            └── for item in list_retryable(now, lookback, min_age):
                  claim(item)        False → already taken, next
                  enqueue(item)      raises → mark_failed(item, error)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from shopspine.core.errors import error_message
from shopspine.core.logging import get_logger
from shopspine.core.settings import SchedulerSettings
from shopspine.core.timestamps import utcnow
from shopspine.retry.models import FailedWorkItem
from shopspine.retry.repository import FailedWorkRepository
from shopspine.scheduling.guard import OverlapGuard, lock_name_for

logger = get_logger(__name__)

RETRY_JOB_KIND = "retry_failed_snapshots"
DEFAULT_RETRY_LOCK_TTL_SECONDS = 600

RetryEnqueue = Callable[[FailedWorkItem], Any]

_retry_handler: RetryEnqueue | None = None


def register_retry_handler(fn: RetryEnqueue) -> RetryEnqueue:
    """Decorator installing the callable that re-enqueues a failed item."""
    global _retry_handler
    _retry_handler = fn
    return fn


def get_retry_handler() -> RetryEnqueue | None:
    return _retry_handler


def reset_retry_handler() -> None:
    global _retry_handler
    _retry_handler = None


@dataclass
class RetrySweepResult:
    scanned: int = 0
    retried: int = 0
    failed: int = 0
    ran: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"scanned": self.scanned, "retried": self.retried, "failed": self.failed, "ran": self.ran}


class RetrySweep:
    """Periodic re-enqueue of failed work items.

    Example:
        >>> sweep = RetrySweep(FailedWorkRepository(conn), guard, enqueue=queue_snapshot)
        >>> sweep.run().retried
        2
    """

    def __init__(
        self,
        repository: FailedWorkRepository,
        guard: OverlapGuard,
        enqueue: RetryEnqueue,
        *,
        lookback: timedelta = timedelta(hours=24),
        min_age: timedelta = timedelta(minutes=5),
        lock_ttl_seconds: int = DEFAULT_RETRY_LOCK_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.guard = guard
        self.enqueue = enqueue
        self.lookback = lookback
        self.min_age = min_age
        self.lock_ttl_seconds = lock_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        repository: FailedWorkRepository,
        guard: OverlapGuard,
        enqueue: RetryEnqueue,
        settings: SchedulerSettings,
    ) -> RetrySweep:
        return cls(
            repository,
            guard,
            enqueue,
            lookback=timedelta(hours=settings.retry_lookback_hours),
            min_age=timedelta(seconds=settings.retry_min_age_seconds),
            lock_ttl_seconds=settings.retry_lock_ttl_seconds,
        )

    @property
    def lock_name(self) -> str:
        return lock_name_for(RETRY_JOB_KIND)

    def run(self, now: datetime | None = None) -> RetrySweepResult:
        """One retry pass. ``ran`` is False when another pass holds the lock."""
        now = now or self._clock()
        result = RetrySweepResult()
        ran = self.guard.with_lock(
            self.lock_name,
            lambda: self._sweep(now, result),
            ttl_seconds=self.lock_ttl_seconds,
        )
        if not ran:
            logger.info("retry_sweep_already_running_skipping")
            result.ran = False
            return result

        logger.info("retry_sweep_completed", **result.to_dict())
        return result

    def _sweep(self, now: datetime, result: RetrySweepResult) -> None:
        items = self.repository.list_retryable(now, self.lookback, self.min_age)
        result.scanned = len(items)
        for item in items:
            if not self.repository.claim(item.id, now):
                logger.debug("failed_work_already_claimed", item_id=item.id)
                continue
            try:
                self.enqueue(item)
            except Exception as e:
                result.failed += 1
                logger.error(
                    "failed_work_retry_dispatch_failed",
                    item_id=item.id,
                    endpoint=item.endpoint,
                    error=error_message(e),
                )
                self.repository.mark_failed(item.id, error_message(e), now)
                continue
            result.retried += 1
            logger.info(
                "failed_work_retry_dispatched",
                item_id=item.id,
                webhook_job_id=item.webhook_job_id,
                retry_count=item.retry_count + 1,
                endpoint=item.endpoint,
            )


__all__ = [
    "RETRY_JOB_KIND",
    "DEFAULT_RETRY_LOCK_TTL_SECONDS",
    "RetryEnqueue",
    "register_retry_handler",
    "get_retry_handler",
    "reset_retry_handler",
    "RetrySweepResult",
    "RetrySweep",
]
