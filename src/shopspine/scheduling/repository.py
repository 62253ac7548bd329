"""Schedule store - definitions plus run-state.

Manifesto:
    The schedule row is the only shared mutable state the sweep touches.
    Every mutation is a single-row statement; the run-state writes are
    conditional UPDATEs whose WHERE clause carries the state-machine and
    re-arm checks, so the database row, not the caller, decides whether a
    write happens. ``rowcount == 1`` is the answer.

Tags:
    shopspine, scheduling, repository, CRUD, run-state

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE STORE                                                           │
│                                                                           │
│  Definition surface (operator edits):                                     │
│  ├── create(spec) → ScheduleDefinition     (cron validated if enabled)    │
│  ├── get(id) → ScheduleDefinition | None                                  │
│  ├── update(id, ScheduleUpdate)            (job_type never changes)       │
│  ├── set_enabled(id, bool)                 (soft disable)                 │
│  ├── delete(id) → bool                     (idempotent)                   │
│  └── list_all() / list_enabled(job_type?) / count_enabled()               │
│                                                                           │
│  Run-state surface (tracker only):                                        │
│  ├── mark_queued(id, now, rearm, running_timeout) → bool                  │
│  │     UPDATE ... WHERE enabled = 1                                       │
│  │                  AND last_run_at < rearm_threshold(now)  (or NULL)     │
│  │                  AND running rows only once older than the timeout     │
│  └── mark_outcome(id, status, message, now, run_at?) → bool               │
│        UPDATE ... WHERE last_run_status IN (allowed predecessors)         │
│        run_at given: running/completed/failed bound to that run          │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from shopspine.core.dialect import Dialect, SQLiteDialect
from shopspine.core.errors import InvalidCronError, ScheduleNotFoundError, StoreError
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection
from shopspine.core.timestamps import from_db, to_db, utcnow
from shopspine.scheduling.evaluator import rearm_threshold, validate_cron, validate_timezone
from shopspine.scheduling.guard import DEFAULT_LOCK_TTL_SECONDS
from shopspine.scheduling.models import (
    Frequency,
    RunStatus,
    ScheduleCreate,
    ScheduleDefinition,
    ScheduleUpdate,
)
from shopspine.scheduling.state import RUN_SCOPED_TARGETS, allowed_predecessors

logger = get_logger(__name__)

DEFAULT_RUNNING_TIMEOUT = timedelta(seconds=DEFAULT_LOCK_TTL_SECONDS)

_COLUMNS = [
    "id",
    "name",
    "job_type",
    "shop_id",
    "options",
    "frequency",
    "cron_expression",
    "timezone",
    "enabled",
    "last_run_at",
    "last_run_ended_at",
    "last_run_status",
    "last_run_message",
    "created_at",
    "updated_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM job_schedules"


class ScheduleRepository:
    """Persistence for schedule definitions and their run-state.

    Example:
        >>> repo = ScheduleRepository(conn)
        >>> schedule = repo.create(ScheduleCreate(
        ...     name="Fetch new orders",
        ...     job_type="orders.fetch_new",
        ...     cron_expression="*/5 * * * *",
        ... ))
        >>> repo.mark_queued(schedule.id, now, timedelta(seconds=60))
        True
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None):
        self.conn = conn
        self.dialect = dialect or SQLiteDialect()

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    # ------------------------------------------------------------------
    # Definition surface
    # ------------------------------------------------------------------

    def create(self, spec: ScheduleCreate) -> ScheduleDefinition:
        """Insert a new schedule.

        Raises:
            InvalidCronError: enabled schedule with an unparseable cron or timezone
        """
        if spec.enabled:
            self._validate_definition(spec.cron_expression, spec.timezone)

        schedule_id = spec.id or str(uuid4())
        now = to_db(utcnow())
        self.conn.execute(
            f"""
            INSERT INTO job_schedules (
                id, name, job_type, shop_id, options, frequency,
                cron_expression, timezone, enabled, created_at, updated_at
            ) VALUES ({self._ph(11)})
            """,
            (
                schedule_id,
                spec.name,
                spec.job_type,
                spec.shop_id,
                json.dumps(spec.options) if spec.options else None,
                spec.frequency.value,
                spec.cron_expression,
                spec.timezone,
                1 if spec.enabled else 0,
                now,
                now,
            ),
        )
        self.conn.commit()
        logger.info("schedule_created", schedule_id=schedule_id, job_type=spec.job_type)
        return self.require(schedule_id)

    def get(self, schedule_id: str) -> ScheduleDefinition | None:
        cursor = self.conn.execute(f"{_SELECT} WHERE id = {self._ph()}", (schedule_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_schedule(row)

    def require(self, schedule_id: str) -> ScheduleDefinition:
        """Like :meth:`get` but raises ScheduleNotFoundError."""
        schedule = self.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def update(self, schedule_id: str, updates: ScheduleUpdate) -> ScheduleDefinition:
        """Update definition fields. Run-state and ``job_type`` are never touched here."""
        current = self.require(schedule_id)

        cron = updates.cron_expression if updates.cron_expression is not None else current.cron_expression
        tz = updates.timezone if updates.timezone is not None else current.timezone
        enabled = updates.enabled if updates.enabled is not None else current.enabled
        if enabled:
            self._validate_definition(cron, tz)

        set_parts: list[str] = []
        params: list[Any] = []

        if updates.name is not None:
            set_parts.append(f"name = {self._ph()}")
            params.append(updates.name)
        if updates.cron_expression is not None:
            set_parts.append(f"cron_expression = {self._ph()}")
            params.append(updates.cron_expression)
        if updates.timezone is not None:
            set_parts.append(f"timezone = {self._ph()}")
            params.append(updates.timezone)
        if updates.frequency is not None:
            set_parts.append(f"frequency = {self._ph()}")
            params.append(updates.frequency.value)
        if updates.shop_id is not None:
            set_parts.append(f"shop_id = {self._ph()}")
            params.append(updates.shop_id)
        if updates.options is not None:
            set_parts.append(f"options = {self._ph()}")
            params.append(json.dumps(updates.options) if updates.options else None)
        if updates.enabled is not None:
            set_parts.append(f"enabled = {self._ph()}")
            params.append(1 if updates.enabled else 0)

        if not set_parts:
            return current

        set_parts.append(f"updated_at = {self._ph()}")
        params.append(to_db(utcnow()))
        params.append(schedule_id)

        self.conn.execute(
            f"UPDATE job_schedules SET {', '.join(set_parts)} WHERE id = {self._ph()}",
            tuple(params),
        )
        self.conn.commit()
        return self.require(schedule_id)

    def set_enabled(self, schedule_id: str, enabled: bool) -> ScheduleDefinition:
        return self.update(schedule_id, ScheduleUpdate(enabled=enabled))

    def delete(self, schedule_id: str) -> bool:
        """Delete a schedule. Deleting a missing id is a no-op returning False."""
        cursor = self.conn.execute(
            f"DELETE FROM job_schedules WHERE id = {self._ph()}",
            (schedule_id,),
        )
        self.conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("schedule_deleted", schedule_id=schedule_id)
        return deleted

    def list_all(self) -> list[ScheduleDefinition]:
        cursor = self.conn.execute(f"{_SELECT} ORDER BY job_type, name")
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def list_enabled(self, job_type: str | None = None) -> list[ScheduleDefinition]:
        """Enabled schedules, optionally restricted to one job type."""
        if job_type is None:
            cursor = self.conn.execute(f"{_SELECT} WHERE enabled = 1 ORDER BY job_type, name")
        else:
            cursor = self.conn.execute(
                f"{_SELECT} WHERE enabled = 1 AND job_type = {self._ph()} ORDER BY name",
                (job_type,),
            )
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def count_enabled(self) -> int:
        cursor = self.conn.execute("SELECT COUNT(*) FROM job_schedules WHERE enabled = 1")
        return cursor.fetchone()[0]

    # ------------------------------------------------------------------
    # Run-state surface
    # ------------------------------------------------------------------

    def mark_queued(
        self,
        schedule_id: str,
        now: datetime,
        rearm_interval: timedelta,
        running_timeout: timedelta = DEFAULT_RUNNING_TIMEOUT,
    ) -> bool:
        """Set ``queued`` unless the row was queued within ``rearm_interval``.

        Clears ``last_run_message`` and ``last_run_ended_at``. Returns False
        when the row is missing, disabled, or still inside the re-arm window.
        A ``running`` row is only taken over once its run started more than
        ``running_timeout`` ago, i.e. after the worker's lock has expired.
        """
        threshold = to_db(rearm_threshold(now, rearm_interval))
        stale_before = to_db(now - running_timeout)
        status_sql, status_params = self._status_predicate(RunStatus.QUEUED)
        ts = to_db(now)
        try:
            cursor = self.conn.execute(
                f"""
                UPDATE job_schedules
                SET last_run_at = {self._ph()},
                    last_run_status = {self._ph()},
                    last_run_message = NULL,
                    last_run_ended_at = NULL,
                    updated_at = {self._ph()}
                WHERE id = {self._ph()}
                  AND enabled = 1
                  AND (last_run_at IS NULL OR last_run_at < {self._ph()})
                  AND (last_run_status IS NULL
                       OR last_run_status != {self._ph()}
                       OR last_run_at < {self._ph()})
                  AND {status_sql}
                """,
                (
                    ts,
                    RunStatus.QUEUED.value,
                    ts,
                    schedule_id,
                    threshold,
                    RunStatus.RUNNING.value,
                    stale_before,
                    *status_params,
                ),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise StoreError("Failed to mark schedule queued", cause=e).with_context(
                schedule_id=schedule_id
            ) from e
        return cursor.rowcount == 1

    def mark_outcome(
        self,
        schedule_id: str,
        status: RunStatus,
        message: str | None,
        now: datetime,
        run_at: datetime | None = None,
    ) -> bool:
        """Write ``running``, ``completed``, ``failed`` or ``skipped``.

        Terminal states stamp ``last_run_ended_at``; ``running`` clears it.
        The write only lands when the current status is an allowed
        predecessor of ``status``.

        ``run_at`` (the ``last_run_at`` of the queued marker a worker picked
        up) binds ``running``, ``completed`` and ``failed`` to that run:
        ``running`` needs the row still queued for it, and the outcome lands
        while the row is running that run or a later marker was skipped.
        """
        if status is RunStatus.QUEUED:
            raise ValueError("use mark_queued for the queued state")

        status_sql, status_params = self._outcome_predicate(status, run_at)
        ended_at = to_db(now) if status.is_terminal else None
        try:
            cursor = self.conn.execute(
                f"""
                UPDATE job_schedules
                SET last_run_status = {self._ph()},
                    last_run_message = {self._ph()},
                    last_run_ended_at = {self._ph()},
                    updated_at = {self._ph()}
                WHERE id = {self._ph()}
                  AND {status_sql}
                """,
                (status.value, message, ended_at, to_db(now), schedule_id, *status_params),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise StoreError(f"Failed to mark schedule {status.value}", cause=e).with_context(
                schedule_id=schedule_id
            ) from e
        return cursor.rowcount == 1

    def current_status(self, schedule_id: str) -> RunStatus | None:
        cursor = self.conn.execute(
            f"SELECT last_run_status FROM job_schedules WHERE id = {self._ph()}",
            (schedule_id,),
        )
        row = cursor.fetchone()
        if not row or row[0] is None:
            return None
        return RunStatus(row[0])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _outcome_predicate(self, status: RunStatus, run_at: datetime | None) -> tuple[str, tuple[str, ...]]:
        if run_at is None or status not in RUN_SCOPED_TARGETS:
            return self._status_predicate(status)
        ts = to_db(run_at)
        if status is RunStatus.RUNNING:
            return (
                f"(last_run_status = {self._ph()} AND last_run_at = {self._ph()})",
                (RunStatus.QUEUED.value, ts),
            )
        return (
            f"((last_run_status = {self._ph()} AND last_run_at = {self._ph()})"
            f" OR (last_run_status = {self._ph()} AND last_run_at > {self._ph()}))",
            (RunStatus.RUNNING.value, ts, RunStatus.SKIPPED.value, ts),
        )

    def _status_predicate(self, target: RunStatus) -> tuple[str, tuple[str, ...]]:
        allowed = allowed_predecessors(target)
        values = tuple(sorted(s.value for s in allowed if s is not None))
        clauses = []
        if values:
            clauses.append(f"last_run_status IN ({self._ph(len(values))})")
        if None in allowed:
            clauses.append("last_run_status IS NULL")
        return "(" + " OR ".join(clauses) + ")", values

    @staticmethod
    def _validate_definition(cron: str | None, timezone: str) -> None:
        if not validate_cron(cron):
            raise InvalidCronError(cron)
        if not validate_timezone(timezone):
            raise InvalidCronError(cron, f"Unknown timezone: {timezone!r}")

    @staticmethod
    def _row_to_schedule(row: Any) -> ScheduleDefinition:
        data = dict(zip(_COLUMNS, tuple(row)))
        options = json.loads(data["options"]) if data["options"] else {}
        status = data["last_run_status"]
        return ScheduleDefinition(
            id=data["id"],
            name=data["name"],
            job_type=data["job_type"],
            cron_expression=data["cron_expression"],
            timezone=data["timezone"],
            frequency=Frequency(data["frequency"]),
            shop_id=data["shop_id"],
            options=options,
            enabled=bool(data["enabled"]),
            last_run_at=from_db(data["last_run_at"]),
            last_run_ended_at=from_db(data["last_run_ended_at"]),
            last_run_status=RunStatus(status) if status else None,
            last_run_message=data["last_run_message"],
            created_at=from_db(data["created_at"]),
            updated_at=from_db(data["updated_at"]),
        )


__all__ = ["DEFAULT_RUNNING_TIMEOUT", "ScheduleRepository"]
