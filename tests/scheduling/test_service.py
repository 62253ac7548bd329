"""Tests for SchedulerService."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from shopspine.core.errors import ScheduleNotFoundError
from shopspine.scheduling.models import RunStatus
from shopspine.scheduling.router import DispatchRouter
from shopspine.scheduling.service import SchedulerService
from shopspine.scheduling.thread_backend import ThreadSchedulerBackend


class BrokenQueue:
    def enqueue(self, job_type, schedule_id):
        raise ConnectionError("queue down")


@pytest.fixture
def service(repository, tracker, registry, recording_queue, lock_manager):
    return SchedulerService(
        repository,
        tracker,
        DispatchRouter(recording_queue, registry),
        lock_manager=lock_manager,
        interval_seconds=3600,
        rearm_interval=timedelta(seconds=60),
    )


class TestSchedulerServiceTick:
    """Test one sweep over the schedules."""

    def test_dispatches_due_schedule(self, service, recording_queue, repository, make_schedule, now):
        """A due schedule is queued and enqueued by id."""
        schedule = make_schedule()
        result = service.tick(now=now)

        assert (result.evaluated, result.due, result.dispatched) == (1, 1, 1)
        assert recording_queue.enqueued == [("orders.fetch_new", schedule.id)]
        assert repository.current_status(schedule.id) is RunStatus.QUEUED

    def test_double_tick_dispatches_once(self, service, recording_queue, make_schedule, now):
        """A second sweep inside the same minute enqueues nothing."""
        make_schedule()
        service.tick(now=now)
        second = service.tick(now=now + timedelta(seconds=30))

        assert second.dispatched == 0
        assert len(recording_queue.enqueued) == 1

    def test_not_due(self, service, recording_queue, make_schedule, now):
        make_schedule(cron_expression="0 3 * * *")
        result = service.tick(now=now)
        assert (result.evaluated, result.due, result.dispatched) == (1, 0, 0)
        assert recording_queue.enqueued == []

    def test_disabled_never_dispatched(self, service, recording_queue, make_schedule, now):
        make_schedule(enabled=False)
        result = service.tick(now=now)
        assert result.evaluated == 0
        assert recording_queue.enqueued == []

    def test_requeues_after_rearm(self, service, recording_queue, make_schedule, now):
        """A schedule stuck in queued is dispatched again on its next firing."""
        make_schedule()
        service.tick(now=now)
        service.tick(now=now + timedelta(minutes=5))
        assert len(recording_queue.enqueued) == 2

    def test_unknown_job_type_is_skipped(self, service, recording_queue, repository, make_schedule, now):
        """Schedules without a handler are skipped and the sweep carries on."""
        unknown = make_schedule(job_type="unknown.type")
        known = make_schedule()

        result = service.tick(now=now)

        assert result.skipped == 1
        assert result.dispatched == 1
        assert recording_queue.enqueued == [("orders.fetch_new", known.id)]
        stored = repository.get(unknown.id)
        assert stored.last_run_status is RunStatus.SKIPPED
        assert stored.last_run_message == "no handler registered"

    def test_unknown_job_type_rearm(self, service, make_schedule, now):
        """A skipped unknown type is not re-evaluated inside the re-arm window."""
        make_schedule(job_type="unknown.type")
        service.tick(now=now)
        assert service.tick(now=now + timedelta(seconds=30)).skipped == 0

    def test_enqueue_failure(self, repository, tracker, registry, make_schedule, now):
        """An enqueue error marks the schedule failed with the error text."""
        service = SchedulerService(repository, tracker, DispatchRouter(BrokenQueue(), registry))
        schedule = make_schedule()

        result = service.tick(now=now)

        assert result.failed == 1
        assert result.dispatched == 0
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "queue down"

    def test_job_type_filter(self, service, recording_queue, make_schedule, now):
        """tick(job_type=...) only evaluates that type."""
        make_schedule()
        make_schedule(job_type="customers.fetch_shoptet")
        result = service.tick(job_type="customers.fetch_shoptet", now=now)
        assert result.evaluated == 1
        assert result.job_type == "customers.fetch_shoptet"

    def test_stats_accumulate(self, service, make_schedule, now):
        make_schedule()
        make_schedule(job_type="unknown.type")
        service.tick(now=now)
        service.tick(now=now + timedelta(seconds=30))

        stats = service.get_stats()
        assert stats.tick_count == 2
        assert stats.schedules_dispatched == 1
        assert stats.schedules_skipped == 1
        assert stats.last_tick == now + timedelta(seconds=30)

        service.reset_stats()
        assert service.get_stats().tick_count == 0


class TestSchedulerServiceTrigger:
    """Test manual runs."""

    def test_trigger_ignores_cron(self, service, recording_queue, make_schedule, now):
        schedule = make_schedule(cron_expression="0 3 * * *")
        result = service.trigger(schedule.id, now=now)
        assert result.dispatched == 1
        assert recording_queue.enqueued == [("orders.fetch_new", schedule.id)]

    def test_trigger_respects_rearm(self, service, make_schedule, now):
        schedule = make_schedule()
        service.trigger(schedule.id, now=now)
        assert service.trigger(schedule.id, now=now + timedelta(seconds=5)).dispatched == 0

    def test_trigger_missing(self, service):
        with pytest.raises(ScheduleNotFoundError):
            service.trigger("nope")


class TestSchedulerServiceLifecycle:
    """Test start/stop and health."""

    def test_health_before_start(self, service, make_schedule, lock_manager):
        """Not healthy until the clock runs; counts come from the store."""
        make_schedule()
        make_schedule(enabled=False)
        lock_manager.try_acquire("job-lock:orders.fetch_new", 60)

        health = service.health()
        assert health.healthy is False
        assert health.schedules_enabled == 1
        assert health.active_locks == 1
        assert health.to_dict()["stats"]["tick_count"] == 0

    def test_start_stop(self, service):
        service.start()
        try:
            assert service.is_running is True
            assert service.health().healthy is True
            service.start()
        finally:
            service.stop()
        assert service.is_running is False
        assert service.health().healthy is False


class TestThreadSchedulerBackend:
    """Test the clock thread."""

    def test_calls_back_repeatedly(self):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 2:
                fired.set()

        backend = ThreadSchedulerBackend(name="test")
        backend.start(callback, interval_seconds=0.01, align=False)
        try:
            assert fired.wait(timeout=5)
        finally:
            backend.stop()
        assert backend.tick_count >= 2
        assert backend.health()["healthy"] is False

    def test_callback_errors_do_not_stop_loop(self):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 2:
                fired.set()
            raise RuntimeError("tick exploded")

        backend = ThreadSchedulerBackend()
        backend.start(callback, interval_seconds=0.01, align=False)
        try:
            assert fired.wait(timeout=5)
        finally:
            backend.stop()
