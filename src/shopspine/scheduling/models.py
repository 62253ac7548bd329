"""Scheduling data model.

Typed dataclass views of the ``job_schedules`` rows, plus the enums the
engine reasons about: the coarse ``Frequency`` an operator picks and the
``RunStatus`` values the run-state machine moves through.

Tags:
    shopspine, models, scheduling, dataclasses, cron

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Frequency(str, Enum):
    """Coarse cadence; a convenience projection of ``cron_expression``."""

    EVERY_MINUTE = "every_minute"
    EVERY_FIVE_MINUTES = "every_five_minutes"
    EVERY_FIFTEEN_MINUTES = "every_fifteen_minutes"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"

    def default_cron(self) -> str | None:
        """Cron expression implied by the frequency (None for custom)."""
        return _FREQUENCY_CRON.get(self)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


_FREQUENCY_CRON: dict[Frequency, str] = {
    Frequency.EVERY_MINUTE: "* * * * *",
    Frequency.EVERY_FIVE_MINUTES: "*/5 * * * *",
    Frequency.EVERY_FIFTEEN_MINUTES: "*/15 * * * *",
    Frequency.HOURLY: "0 * * * *",
    Frequency.DAILY: "0 0 * * *",
    Frequency.WEEKLY: "0 0 * * 1",
}


class RunStatus(str, Enum):
    """Values of ``last_run_status``."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.SKIPPED)


@dataclass
class ScheduleDefinition:
    """One ``job_schedules`` row.

    Definition fields come from operator edits; the ``last_run_*`` fields
    are written only by the run-state tracker.
    """

    id: str
    name: str
    job_type: str
    cron_expression: str | None
    timezone: str = "UTC"
    frequency: Frequency = Frequency.CUSTOM
    shop_id: int | None = None
    options: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    last_run_at: datetime | None = None
    last_run_ended_at: datetime | None = None
    last_run_status: RunStatus | None = None
    last_run_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "job_type": self.job_type,
            "shop_id": self.shop_id,
            "options": dict(self.options),
            "frequency": self.frequency.value,
            "cron_expression": self.cron_expression,
            "timezone": self.timezone,
            "enabled": self.enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_ended_at": self.last_run_ended_at.isoformat() if self.last_run_ended_at else None,
            "last_run_status": self.last_run_status.value if self.last_run_status else None,
            "last_run_message": self.last_run_message,
        }


@dataclass
class ScheduleCreate:
    """Input for creating a schedule."""

    name: str
    job_type: str
    cron_expression: str | None
    timezone: str = "UTC"
    frequency: Frequency = Frequency.CUSTOM
    shop_id: int | None = None
    options: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    id: str | None = None


@dataclass
class ScheduleUpdate:
    """Partial update of definition fields (``job_type`` is immutable)."""

    name: str | None = None
    cron_expression: str | None = None
    timezone: str | None = None
    frequency: Frequency | None = None
    shop_id: int | None = None
    options: dict[str, Any] | None = None
    enabled: bool | None = None
