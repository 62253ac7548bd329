"""Tests for JobWorker."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shopspine.scheduling.models import RunStatus
from shopspine.scheduling.worker import DISABLED_MESSAGE, JobWorker, already_running_message


@pytest.fixture
def worker(repository, tracker, guard, registry):
    return JobWorker(repository, tracker, guard, registry)


class TestJobWorker:
    """Test executing queued schedules."""

    def test_runs_handler(self, worker, registry, repository, tracker, make_schedule, now):
        """A queued schedule runs and completes with the handler's summary."""
        schedule = make_schedule(shop_id=7)
        tracker.mark_queued(schedule.id, now)

        assert worker.execute("orders.fetch_new", schedule.id) is RunStatus.COMPLETED

        ctx = registry.calls[0]
        assert ctx.schedule_id == schedule.id
        assert ctx.shop_id == 7
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.COMPLETED
        assert stored.last_run_message == "Fetched 3 orders"

    def test_options_are_sanitized(self, worker, registry, tracker, make_schedule, now):
        """Handlers receive catalog defaults with clamped values."""
        schedule = make_schedule(options={"fallback_lookback_hours": 5000})
        tracker.mark_queued(schedule.id, now)
        worker.execute("orders.fetch_new", schedule.id)
        assert registry.calls[0].options == {"fallback_lookback_hours": 720}

    def test_options_for_types_outside_catalog(self, worker, registry, tracker, make_schedule, now):
        """Unknown-to-catalog job types get their options verbatim."""
        registry.register("custom.job", lambda ctx: registry.calls.append(ctx))
        schedule = make_schedule(job_type="custom.job", options={"x": 1})
        tracker.mark_queued(schedule.id, now)
        worker.execute("custom.job", schedule.id)
        assert registry.calls[0].options == {"x": 1}

    def test_contention_skips(self, worker, registry, repository, lock_manager, tracker, make_schedule, now):
        """A held family lock skips the run without calling the handler."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        lock_manager.try_acquire("job-lock:orders.fetch_new", 60)

        assert worker.execute("orders.fetch_new", schedule.id) is RunStatus.SKIPPED

        assert registry.calls == []
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.SKIPPED
        assert stored.last_run_message == already_running_message("orders.fetch_new")
        assert stored.last_run_message == "orders.fetch_new already running, skipping"

    def test_shared_kind_blocks_sibling(self, worker, registry, repository, lock_manager, tracker, make_schedule, now):
        """Job types sharing a kind exclude each other."""
        registry.register("orders.refresh_statuses", lambda ctx: None, kind="orders.statuses")
        registry.register("orders.refresh_statuses_deep", lambda ctx: None, kind="orders.statuses")
        schedule = make_schedule(job_type="orders.refresh_statuses_deep")
        tracker.mark_queued(schedule.id, now)
        lock_manager.try_acquire("job-lock:orders.statuses", 60)

        assert worker.execute("orders.refresh_statuses_deep", schedule.id) is RunStatus.SKIPPED
        assert repository.get(schedule.id).last_run_message == "orders.statuses already running, skipping"

    def test_handler_failure(self, worker, registry, repository, lock_manager, tracker, make_schedule, now):
        """Handler errors mark failed, release the lock and propagate."""

        def broken(ctx):
            raise RuntimeError("storefront returned 502")

        registry.register("orders.fetch_new", broken)
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)

        with pytest.raises(RuntimeError):
            worker.execute("orders.fetch_new", schedule.id)

        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "storefront returned 502"
        assert lock_manager.is_locked("job-lock:orders.fetch_new") is False

    def test_missing_schedule(self, worker):
        """A schedule deleted after queueing is ignored."""
        assert worker.execute("orders.fetch_new", "gone") is None

    def test_no_handler(self, worker, repository, tracker, make_schedule, now):
        schedule = make_schedule(job_type="unknown.type")
        tracker.mark_queued(schedule.id, now)
        assert worker.execute("unknown.type", schedule.id) is RunStatus.SKIPPED
        assert repository.get(schedule.id).last_run_message == "no handler registered"

    def test_disabled_after_queueing(self, worker, registry, repository, tracker, make_schedule, now):
        """A schedule disabled while queued is skipped."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        repository.set_enabled(schedule.id, False)

        assert worker.execute("orders.fetch_new", schedule.id) is RunStatus.SKIPPED
        assert registry.calls == []
        assert repository.get(schedule.id).last_run_message == DISABLED_MESSAGE


class TestOverlappingRuns:
    """Test outcomes when a sweep or a second worker arrives mid-run."""

    def test_failure_survives_requeue_attempt(self, worker, registry, repository, tracker, make_schedule, now):
        """A live run is not requeued, the second worker is skipped, the failure is kept."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        during = {}

        def slow_and_broken(ctx):
            during["requeued"] = tracker.mark_queued(schedule.id, now + timedelta(minutes=5))
            during["second"] = worker.execute("orders.fetch_new", schedule.id)
            raise RuntimeError("storefront returned 502")

        registry.register("orders.fetch_new", slow_and_broken)
        with pytest.raises(RuntimeError):
            worker.execute("orders.fetch_new", schedule.id)

        assert during == {"requeued": False, "second": RunStatus.SKIPPED}
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "storefront returned 502"

    def test_failure_lands_after_stale_retake(self, worker, registry, repository, tracker, make_schedule, now):
        """A run outliving the running timeout still records its failure over the skipped retake."""
        schedule = make_schedule()
        tracker.mark_queued(schedule.id, now)
        during = {}

        def very_slow_and_broken(ctx):
            during["requeued"] = tracker.mark_queued(schedule.id, now + timedelta(hours=2))
            during["second"] = worker.execute("orders.fetch_new", schedule.id)
            raise RuntimeError("import timed out")

        registry.register("orders.fetch_new", very_slow_and_broken)
        with pytest.raises(RuntimeError):
            worker.execute("orders.fetch_new", schedule.id)

        assert during == {"requeued": True, "second": RunStatus.SKIPPED}
        stored = repository.get(schedule.id)
        assert stored.last_run_status is RunStatus.FAILED
        assert stored.last_run_message == "import timed out"
