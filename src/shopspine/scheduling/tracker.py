"""Run-state tracker: the only writer of a schedule's ``last_run_*`` fields.

The sweep calls it around dispatch (``queued``, or ``skipped``/``failed``
when dispatch could not happen); the worker calls it around execution
(``running``, then ``completed``/``failed``/``skipped``). Each call checks
the writer's role against the state machine before the conditional UPDATE
in the store decides whether the row actually moves.

Example::

    tracker = RunStateTracker(repo)
    if tracker.mark_queued(schedule.id, now):
        router.dispatch(schedule.job_type, schedule.id)

    # worker side
    with tracker.track(schedule_id) as run:
        run.message = do_work()
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from shopspine.core.errors import ShopSpineError, error_message
from shopspine.core.logging import get_logger
from shopspine.core.timestamps import utcnow
from shopspine.scheduling.evaluator import DEFAULT_REARM_INTERVAL
from shopspine.scheduling.models import RunStatus
from shopspine.scheduling.repository import DEFAULT_RUNNING_TIMEOUT, ScheduleRepository
from shopspine.scheduling.state import Writer, check_writer

logger = get_logger(__name__)

NO_HANDLER_MESSAGE = "no handler registered"
DEFAULT_COMPLETED_MESSAGE = "completed"


@dataclass
class RunHandle:
    """Mutable outcome slot for :meth:`RunStateTracker.track`."""

    schedule_id: str
    run_at: datetime | None = None
    message: str | None = None


class RunStateTracker:
    def __init__(
        self,
        repository: ScheduleRepository,
        rearm_interval: timedelta = DEFAULT_REARM_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
        running_timeout: timedelta = DEFAULT_RUNNING_TIMEOUT,
    ) -> None:
        self.repository = repository
        self.rearm_interval = rearm_interval
        self.running_timeout = running_timeout
        self._clock = clock

    # -- sweep side ---------------------------------------------------------

    def mark_queued(self, schedule_id: str, now: datetime | None = None) -> bool:
        """``last_run_at=now, status=queued, message=None, ended_at=None``.

        False when the schedule was queued within the re-arm interval.
        """
        check_writer(Writer.SWEEP, RunStatus.QUEUED, schedule_id)
        queued = self.repository.mark_queued(
            schedule_id, now or self._clock(), self.rearm_interval, self.running_timeout
        )
        if not queued:
            logger.debug("schedule_queue_rejected", schedule_id=schedule_id)
        return queued

    def mark_unsupported(self, schedule_id: str, now: datetime | None = None) -> bool:
        return self._write(Writer.SWEEP, schedule_id, RunStatus.SKIPPED, NO_HANDLER_MESSAGE, now)

    def mark_dispatch_failed(self, schedule_id: str, message: str, now: datetime | None = None) -> bool:
        return self._write(Writer.SWEEP, schedule_id, RunStatus.FAILED, message, now)

    # -- worker side --------------------------------------------------------

    def mark_running(
        self, schedule_id: str, now: datetime | None = None, run_at: datetime | None = None
    ) -> bool:
        return self._write(Writer.WORKER, schedule_id, RunStatus.RUNNING, None, now, run_at)

    def mark_completed(
        self,
        schedule_id: str,
        message: str | None = None,
        now: datetime | None = None,
        run_at: datetime | None = None,
    ) -> bool:
        return self._write(
            Writer.WORKER, schedule_id, RunStatus.COMPLETED, message or DEFAULT_COMPLETED_MESSAGE, now, run_at
        )

    def mark_failed(
        self, schedule_id: str, message: str, now: datetime | None = None, run_at: datetime | None = None
    ) -> bool:
        return self._write(Writer.WORKER, schedule_id, RunStatus.FAILED, message, now, run_at)

    def mark_skipped(self, schedule_id: str, message: str, now: datetime | None = None) -> bool:
        return self._write(Writer.WORKER, schedule_id, RunStatus.SKIPPED, message, now)

    @contextmanager
    def track(self, schedule_id: str, run_at: datetime | None = None) -> Iterator[RunHandle]:
        """Wrap one execution: running → completed, or failed on any exception.

        ``run_at`` is the ``last_run_at`` of the queued marker being executed;
        when given, every write is bound to that run. The failure write
        happens before the exception propagates.
        """
        handle = RunHandle(schedule_id=schedule_id, run_at=run_at)
        self.mark_running(schedule_id, run_at=run_at)
        try:
            yield handle
        except BaseException as exc:
            try:
                self.mark_failed(schedule_id, error_message(exc), run_at=run_at)
            except ShopSpineError:
                logger.exception("failed_status_write_failed", schedule_id=schedule_id)
            raise
        self.mark_completed(schedule_id, handle.message, run_at=run_at)

    # -- internals ----------------------------------------------------------

    def _write(
        self,
        writer: Writer,
        schedule_id: str,
        status: RunStatus,
        message: str | None,
        now: datetime | None,
        run_at: datetime | None = None,
    ) -> bool:
        check_writer(writer, status, schedule_id)
        written = self.repository.mark_outcome(schedule_id, status, message, now or self._clock(), run_at)
        if written:
            logger.debug("run_state_written", schedule_id=schedule_id, status=status.value, writer=writer.value)
        else:
            logger.warning(
                "run_state_transition_rejected",
                schedule_id=schedule_id,
                status=status.value,
                writer=writer.value,
                current=_status_value(self.repository.current_status(schedule_id)),
            )
        return written


def _status_value(status: RunStatus | None) -> str | None:
    return status.value if status else None


__all__ = [
    "NO_HANDLER_MESSAGE",
    "DEFAULT_COMPLETED_MESSAGE",
    "RunHandle",
    "RunStateTracker",
]
