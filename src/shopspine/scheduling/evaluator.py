"""Due-ness evaluation.

Manifesto:
    Whether a schedule is due is a pure function of the schedule and the
    current instant. Keeping it free of I/O makes the sweep's behaviour at
    any wall-clock minute (DST changes included) testable with plain
    datetimes.

Algorithm::

    now (any tz) ──► UTC ──► schedule.timezone ──► truncate to minute ──► t
    due  ⇔  cron matches t
            (croniter(expr, t - 1s).get_next() falls inside [t, t + 60s))
        AND NOT (last_run_at is set AND last_run_at >= rearm_threshold(now))

    rearm_threshold(now) = floor_minute(floor_minute(now) - rearm) + 1 min

    The re-arm check works on whole minutes: a tick that wakes a few
    milliseconds earlier in its minute than the previous one still re-arms,
    while a second tick inside the same minute never does.

    No cron expression, an unparseable one, or an unknown timezone → never
    due; logged as a warning, never raised.

Cron fields are evaluated in the schedule's timezone, so ``0 2 * * *``
with ``Europe/Prague`` fires at 02:00 Prague time whatever the offset.
Six-field expressions (trailing seconds field) are due when any of their
seconds fall in the current minute.

During the autumn fall-back hour the local wall clock repeats. Matching is
done on wall-clock fields, so a fixed-time expression inside that hour
(``30 2 * * *`` in ``Europe/Prague``) matches both 02:30 occurrences; the
re-arm check does not suppress the second one because an hour lies between
them. Schedules that must not repeat should avoid the 02:00-03:00 local
window or use UTC.

Tags:
    shopspine, scheduling, cron, croniter, timezone

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from shopspine.core.logging import get_logger
from shopspine.core.timestamps import ensure_utc
from shopspine.scheduling.models import ScheduleDefinition

logger = get_logger(__name__)

DEFAULT_REARM_INTERVAL = timedelta(seconds=60)


@dataclass(frozen=True)
class DueDecision:
    """Outcome of one evaluation; ``reason`` is for logs."""

    due: bool
    reason: str

    def __bool__(self) -> bool:
        return self.due


def validate_cron(expression: str | None) -> bool:
    """True for a syntactically valid five- or six-field cron expression."""
    if not expression or not expression.strip():
        return False
    if len(expression.split()) not in (5, 6):
        return False
    return croniter.is_valid(expression)


def validate_timezone(name: str | None) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def local_minute(now: datetime, timezone: str) -> datetime:
    """``now`` projected to ``timezone`` and truncated to the minute."""
    local = ensure_utc(now).astimezone(ZoneInfo(timezone))
    return local.replace(second=0, microsecond=0)


def rearm_threshold(now: datetime, rearm_interval: timedelta = DEFAULT_REARM_INTERVAL) -> datetime:
    """Earliest ``last_run_at`` that still blocks a new run at ``now``.

    Both instants are compared on whole UTC minutes; ``last_run_at`` must be
    strictly earlier than the returned value for the schedule to re-arm.
    """
    minute = _floor_minute(ensure_utc(now))
    return _floor_minute(minute - rearm_interval) + timedelta(minutes=1)


def _floor_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def cron_matches(expression: str, minute: datetime) -> bool:
    """Does ``expression`` fire anywhere within the minute starting at ``minute``?"""
    itr = croniter(expression, minute - timedelta(seconds=1))
    upcoming = itr.get_next(datetime)
    return minute <= upcoming < minute + timedelta(minutes=1)


def evaluate(
    schedule: ScheduleDefinition,
    now: datetime,
    rearm_interval: timedelta = DEFAULT_REARM_INTERVAL,
) -> DueDecision:
    """Decide whether ``schedule`` is due at ``now``."""
    if not schedule.enabled:
        return DueDecision(False, "disabled")

    expression = (schedule.cron_expression or "").strip()
    if not expression:
        return DueDecision(False, "no cron expression")

    if not validate_cron(expression):
        logger.warning(
            "invalid_cron_expression",
            schedule_id=schedule.id,
            job_type=schedule.job_type,
            cron_expression=expression,
        )
        return DueDecision(False, "invalid cron expression")

    if not validate_timezone(schedule.timezone):
        logger.warning(
            "unknown_timezone",
            schedule_id=schedule.id,
            job_type=schedule.job_type,
            timezone=schedule.timezone,
        )
        return DueDecision(False, "unknown timezone")

    now_utc = ensure_utc(now)
    last_run_at = schedule.last_run_at
    if last_run_at is not None and ensure_utc(last_run_at) >= rearm_threshold(now_utc, rearm_interval):
        return DueDecision(False, "within re-arm interval")

    if not cron_matches(expression, local_minute(now_utc, schedule.timezone)):
        return DueDecision(False, "cron does not match")

    return DueDecision(True, "due")


def is_due(
    schedule: ScheduleDefinition,
    now: datetime,
    rearm_interval: timedelta = DEFAULT_REARM_INTERVAL,
) -> bool:
    return evaluate(schedule, now, rearm_interval).due


def next_due(schedule: ScheduleDefinition, after: datetime) -> datetime | None:
    """Next firing instant (UTC) strictly after ``after``; None when never due."""
    expression = (schedule.cron_expression or "").strip()
    if not validate_cron(expression) or not validate_timezone(schedule.timezone):
        return None
    start = ensure_utc(after).astimezone(ZoneInfo(schedule.timezone))
    return ensure_utc(croniter(expression, start).get_next(datetime))


__all__ = [
    "DEFAULT_REARM_INTERVAL",
    "DueDecision",
    "validate_cron",
    "validate_timezone",
    "local_minute",
    "rearm_threshold",
    "cron_matches",
    "evaluate",
    "is_due",
    "next_due",
]
