"""Tests for RunStateTracker."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shopspine.scheduling.models import RunStatus
from shopspine.scheduling.tracker import NO_HANDLER_MESSAGE


class TestSweepWrites:
    """Test the sweep side of the tracker."""

    def test_mark_queued(self, tracker, repository, make_schedule, now):
        schedule = make_schedule()
        assert tracker.mark_queued(schedule.id, now) is True
        assert tracker.mark_queued(schedule.id, now + timedelta(seconds=10)) is False
        assert repository.current_status(schedule.id) is RunStatus.QUEUED

    def test_mark_unsupported(self, tracker, repository, make_schedule, now):
        """Schedules without a handler end up skipped with a fixed message."""
        schedule = make_schedule(job_type="unknown.type")
        tracker.mark_queued(schedule.id, now)
        assert tracker.mark_unsupported(schedule.id, now) is True
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.SKIPPED
        assert stored.last_run_message == NO_HANDLER_MESSAGE == "no handler registered"

    def test_mark_dispatch_failed(self, tracker, repository, make_schedule, now):
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        assert tracker.mark_dispatch_failed(schedule.id, "queue down", now) is True
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "queue down"


class TestTrack:
    """Test the execution context manager."""

    def test_completed_with_message(self, tracker, repository, make_schedule, now):
        """A clean exit writes completed with the handler's summary."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        with tracker.track(schedule.id) as run:
            assert repository.current_status(schedule.id) is RunStatus.RUNNING
            run.message = "Fetched 3 orders"

        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.COMPLETED
        assert stored.last_run_message == "Fetched 3 orders"
        assert stored.last_run_ended_at is not None

    def test_completed_default_message(self, tracker, repository, make_schedule, now):
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        with tracker.track(schedule.id):
            pass
        assert repository.get(schedule.id).last_run_message == "completed"

    def test_failed_on_exception(self, tracker, repository, make_schedule, now):
        """An exception writes failed before it propagates."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        with pytest.raises(ValueError, match="bad shop token"):
            with tracker.track(schedule.id):
                raise ValueError("bad shop token")

        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "bad shop token"

    def test_failed_message_falls_back_to_class_name(self, tracker, repository, make_schedule, now):
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        with pytest.raises(TimeoutError):
            with tracker.track(schedule.id):
                raise TimeoutError()
        assert repository.get(schedule.id).last_run_message == "TimeoutError"

    def test_running_rejected_without_queue(self, tracker, repository, make_schedule):
        """running only follows queued."""
        schedule = make_schedule()
        assert tracker.mark_running(schedule.id) is False
        assert repository.current_status(schedule.id) is None
