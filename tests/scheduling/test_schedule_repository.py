"""Tests for ScheduleRepository."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shopspine.core.errors import InvalidCronError, ScheduleNotFoundError
from shopspine.scheduling.models import Frequency, RunStatus, ScheduleCreate, ScheduleUpdate

REARM = timedelta(seconds=60)


class TestScheduleCrud:
    """Test definition CRUD."""

    def test_create_and_get(self, repository):
        """Created schedule round-trips through the store."""
        created = repository.create(
            ScheduleCreate(
                name="Fetch new orders",
                job_type="orders.fetch_new",
                cron_expression="*/5 * * * *",
                timezone="Europe/Prague",
                frequency=Frequency.EVERY_FIVE_MINUTES,
                shop_id=7,
                options={"fallback_lookback_hours": 24},
            )
        )
        fetched = repository.get(created.id)
        assert fetched.name == "Fetch new orders"
        assert fetched.timezone == "Europe/Prague"
        assert fetched.frequency is Frequency.EVERY_FIVE_MINUTES
        assert fetched.shop_id == 7
        assert fetched.options == {"fallback_lookback_hours": 24}
        assert fetched.enabled is True
        assert fetched.last_run_status is None
        assert fetched.created_at is not None

    def test_create_with_explicit_id(self, make_schedule):
        """Caller-supplied ids are kept."""
        assert make_schedule(id="fixed-id").id == "fixed-id"

    def test_create_invalid_cron(self, make_schedule):
        """Enabled schedules need a parseable cron."""
        with pytest.raises(InvalidCronError):
            make_schedule(cron_expression="every day")

    def test_create_unknown_timezone(self, make_schedule):
        """Enabled schedules need a known timezone."""
        with pytest.raises(InvalidCronError, match="Unknown timezone"):
            make_schedule(timezone="Mars/Olympus")

    def test_create_disabled_skips_validation(self, make_schedule):
        """Disabled schedules may hold an unfinished definition."""
        schedule = make_schedule(cron_expression=None, enabled=False)
        assert schedule.enabled is False
        assert schedule.cron_expression is None

    def test_get_missing(self, repository):
        """Missing ids return None; require raises."""
        assert repository.get("nope") is None
        with pytest.raises(ScheduleNotFoundError):
            repository.require("nope")

    def test_update(self, repository, make_schedule):
        """Only the given fields change."""
        schedule = make_schedule()
        updated = repository.update(schedule.id, ScheduleUpdate(cron_expression="0 * * * *", name="Hourly"))
        assert updated.cron_expression == "0 * * * *"
        assert updated.name == "Hourly"
        assert updated.job_type == "orders.fetch_new"

    def test_update_rejects_invalid_cron(self, repository, make_schedule):
        """Updates are validated like creates."""
        schedule = make_schedule()
        with pytest.raises(InvalidCronError):
            repository.update(schedule.id, ScheduleUpdate(cron_expression="bad"))

    def test_set_enabled(self, repository, make_schedule):
        """Toggle enabled flag."""
        schedule = make_schedule()
        assert repository.set_enabled(schedule.id, False).enabled is False
        assert repository.set_enabled(schedule.id, True).enabled is True

    def test_delete_is_idempotent(self, repository, make_schedule):
        """Deleting twice is not an error."""
        schedule = make_schedule()
        assert repository.delete(schedule.id) is True
        assert repository.delete(schedule.id) is False
        assert repository.get(schedule.id) is None

    def test_list_enabled(self, repository, make_schedule):
        """list_enabled filters on enabled and job type."""
        a = make_schedule()
        make_schedule(enabled=False)
        c = make_schedule(job_type="customers.fetch_shoptet")
        assert {s.id for s in repository.list_enabled()} == {a.id, c.id}
        assert [s.id for s in repository.list_enabled("customers.fetch_shoptet")] == [c.id]
        assert repository.count_enabled() == 2
        assert len(repository.list_all()) == 3


class TestRunState:
    """Test the conditional run-state writes."""

    def test_mark_queued_once_per_rearm(self, repository, make_schedule, now):
        """A second queue inside the re-arm interval is rejected."""
        schedule = make_schedule()
        assert repository.mark_queued(schedule.id, now, REARM) is True
        assert repository.mark_queued(schedule.id, now + timedelta(seconds=30), REARM) is False
        assert repository.mark_queued(schedule.id, now + timedelta(seconds=61), REARM) is True

        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.QUEUED
        assert stored.last_run_at == now + timedelta(seconds=61)

    def test_mark_queued_clears_previous_outcome(self, repository, make_schedule, now):
        """Queueing resets message and end time."""
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.SKIPPED, "busy", now)
        assert repository.get(schedule.id).last_run_ended_at == now

        repository.mark_queued(schedule.id, now + timedelta(minutes=5), REARM)
        stored = repository.get(schedule.id)
        assert stored.last_run_message is None
        assert stored.last_run_ended_at is None

    def test_mark_queued_disabled(self, repository, make_schedule, now):
        """Disabled schedules are never queued."""
        schedule = make_schedule(enabled=False)
        assert repository.mark_queued(schedule.id, now, REARM) is False

    def test_mark_queued_missing(self, repository, now):
        """Unknown ids are not queued."""
        assert repository.mark_queued("nope", now, REARM) is False

    def test_outcome_follows_predecessors(self, repository, make_schedule, now):
        """completed only lands after running."""
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        assert repository.mark_outcome(schedule.id, RunStatus.COMPLETED, "done", now) is False
        assert repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now) is True
        assert repository.get(schedule.id).last_run_ended_at is None
        assert repository.mark_outcome(schedule.id, RunStatus.COMPLETED, "done", now) is True

        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.COMPLETED
        assert stored.last_run_message == "done"
        assert stored.last_run_ended_at == now
        assert repository.current_status(schedule.id) is RunStatus.COMPLETED

    def test_mark_outcome_refuses_queued(self, repository, make_schedule, now):
        """Queued is only written through mark_queued."""
        schedule = make_schedule()
        with pytest.raises(ValueError):
            repository.mark_outcome(schedule.id, RunStatus.QUEUED, None, now)

    def test_mark_queued_ignores_tick_jitter(self, repository, make_schedule, now):
        """The re-arm window is counted in whole minutes."""
        schedule = make_schedule(cron_expression="* * * * *")
        assert repository.mark_queued(schedule.id, now + timedelta(milliseconds=550), REARM) is True
        assert repository.mark_queued(schedule.id, now + timedelta(seconds=59), REARM) is False
        assert repository.mark_queued(schedule.id, now + timedelta(minutes=1, milliseconds=520), REARM) is True

    def test_running_row_is_not_requeued_while_live(self, repository, make_schedule, now):
        """A running row waits for the running timeout, not just the re-arm interval."""
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=now)

        assert repository.mark_queued(schedule.id, now + timedelta(minutes=5), REARM) is False
        assert repository.current_status(schedule.id) is RunStatus.RUNNING

    def test_stuck_running_is_requeued_after_timeout(self, repository, make_schedule, now):
        """A crashed run left in running can be queued again once its lock has expired."""
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now)

        retake = now + timedelta(minutes=61)
        assert repository.mark_queued(schedule.id, retake, REARM) is True

        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, retake, run_at=retake)
        short = timedelta(minutes=5)
        assert repository.mark_queued(schedule.id, retake + timedelta(minutes=4), REARM, short) is False
        assert repository.mark_queued(schedule.id, retake + timedelta(minutes=6), REARM, short) is True


class TestRunScopedOutcome:
    """Test worker writes bound to the queued marker they picked up."""

    def test_running_needs_matching_marker(self, repository, make_schedule, now):
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        earlier = now - timedelta(minutes=5)
        assert repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=earlier) is False
        assert repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=now) is True

    def test_outcome_for_own_run(self, repository, make_schedule, now):
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=now)

        other = now - timedelta(hours=2)
        assert repository.mark_outcome(schedule.id, RunStatus.FAILED, "late", now, run_at=other) is False
        assert repository.mark_outcome(schedule.id, RunStatus.FAILED, "HTTP 502", now, run_at=now) is True
        assert repository.get(schedule.id).last_run_message == "HTTP 502"

    def test_outcome_lands_over_later_skip(self, repository, make_schedule, now):
        """A run that outlived its timeout still reports over a skipped retake."""
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=now)
        later = now + timedelta(hours=2)
        assert repository.mark_queued(schedule.id, later, REARM) is True
        repository.mark_outcome(schedule.id, RunStatus.SKIPPED, "busy", later)

        assert repository.mark_outcome(schedule.id, RunStatus.COMPLETED, "done", later, run_at=now) is True
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.COMPLETED
        assert stored.last_run_message == "done"

    def test_outcome_does_not_overwrite_newer_run(self, repository, make_schedule, now):
        schedule = make_schedule()
        repository.mark_queued(schedule.id, now, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, now, run_at=now)
        later = now + timedelta(hours=2)
        repository.mark_queued(schedule.id, later, REARM)
        repository.mark_outcome(schedule.id, RunStatus.RUNNING, None, later, run_at=later)

        assert repository.mark_outcome(schedule.id, RunStatus.FAILED, "old run", later, run_at=now) is False
        assert repository.current_status(schedule.id) is RunStatus.RUNNING
