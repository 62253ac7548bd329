"""
Run-state machine for one schedule row.

Two call sites write ``last_run_status``: the sweep (when it queues work or
records why it could not) and the worker executing the job. The table below
names every legal move and which writer may make it; the store turns it
into the ``WHERE last_run_status IN (...)`` predicate of each conditional
UPDATE so an illegal write changes nothing.

Architecture:
    ::

                   ┌──────────── skipped ◄──────────┐
                   │                                │
        (none) ──► queued ──► running ──► completed │
                   │   │         │                  │
                   │   └────┐    └──────► failed    │
                   │        ▼                       │
                   └────► failed / skipped ─────────┘
                   ▲
                   └── completed | failed | skipped (next due minute)

    Writers:
        SWEEP   queued, skipped (no handler), failed (enqueue raised)
        WORKER  running, completed, failed, skipped (disabled / lock held)

    Every ``queued`` write is also gated by the re-arm interval, so
    ``queued → queued`` only happens after it has passed. ``running →
    queued`` additionally waits for the running timeout (the lock TTL), so
    a live worker is never overtaken; it recovers schedules whose worker
    died without writing an outcome.

    Worker writes are run-scoped: ``running``, ``completed`` and ``failed``
    carry the ``last_run_at`` of the queued marker the worker picked up.
    The outcome lands while the row is still running that run, or when a
    later marker was only skipped, so a run that outlives its lock still
    reports how it ended.

Tags:
    shopspine, state-machine, run-state, scheduling

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum

from shopspine.core.errors import InvalidTransitionError
from shopspine.scheduling.models import RunStatus


class Writer(str, Enum):
    SWEEP = "sweep"
    WORKER = "worker"


# target -> allowed predecessors (None is "never run")
TRANSITIONS: dict[RunStatus, frozenset[RunStatus | None]] = {
    RunStatus.QUEUED: frozenset(
        {
            None,
            RunStatus.QUEUED,
            RunStatus.RUNNING,
            RunStatus.COMPLETED,
            RunStatus.FAILED,
            RunStatus.SKIPPED,
        }
    ),
    RunStatus.RUNNING: frozenset({RunStatus.QUEUED}),
    RunStatus.COMPLETED: frozenset({RunStatus.RUNNING}),
    RunStatus.FAILED: frozenset({RunStatus.QUEUED, RunStatus.RUNNING}),
    RunStatus.SKIPPED: frozenset(
        {None, RunStatus.QUEUED, RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.SKIPPED}
    ),
}

# worker writes that carry the run they belong to
RUN_SCOPED_TARGETS: frozenset[RunStatus] = frozenset(
    {RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED}
)

WRITER_TARGETS: dict[Writer, frozenset[RunStatus]] = {
    Writer.SWEEP: frozenset({RunStatus.QUEUED, RunStatus.SKIPPED, RunStatus.FAILED}),
    Writer.WORKER: frozenset(
        {RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.SKIPPED}
    ),
}


def allowed_predecessors(target: RunStatus) -> frozenset[RunStatus | None]:
    return TRANSITIONS[target]


def can_transition(current: RunStatus | None, target: RunStatus) -> bool:
    return current in TRANSITIONS[target]


def check_writer(writer: Writer, target: RunStatus, schedule_id: str | None = None) -> None:
    """Raise InvalidTransitionError when ``writer`` may not write ``target`` at all."""
    if target not in WRITER_TARGETS[writer]:
        raise InvalidTransitionError(schedule_id, None, target.value, writer=writer.value)


__all__ = [
    "Writer",
    "TRANSITIONS",
    "WRITER_TARGETS",
    "RUN_SCOPED_TARGETS",
    "allowed_predecessors",
    "can_transition",
    "check_writer",
]
