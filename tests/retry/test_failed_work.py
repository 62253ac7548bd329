"""Tests for FailedWorkRepository."""

from __future__ import annotations

from datetime import timedelta

import pytest

from shopspine.retry.models import FailedWorkItem, FailedWorkStatus
from shopspine.retry.repository import FailedWorkRepository

LOOKBACK = timedelta(hours=24)
MIN_AGE = timedelta(minutes=5)


@pytest.fixture
def failed_work(db_conn) -> FailedWorkRepository:
    return FailedWorkRepository(db_conn, max_retries=3)


class TestRecordFailure:
    """Test recording failed attempts."""

    def test_first_failure(self, failed_work, now):
        item = failed_work.record_failure(
            "wh-1", "/api/orders/snapshot", "Connection timeout", shop_id=7, context={"page": 2}, now=now
        )
        assert item.status is FailedWorkStatus.PENDING
        assert item.retry_count == 0
        assert item.max_retries == 3
        assert item.shop_id == 7
        assert item.context == {"page": 2}
        assert item.first_failed_at == item.last_failed_at == now
        assert failed_work.get_by_webhook_job("wh-1").id == item.id

    def test_repeat_failure_bumps(self, failed_work, now):
        """A second failure re-pends the same item with the new error."""
        first = failed_work.record_failure("wh-1", "/api/orders/snapshot", "timeout", now=now)
        failed_work.claim(first.id)
        later = now + timedelta(hours=1)

        second = failed_work.record_failure("wh-1", "/api/orders/snapshot", "HTTP 500", now=later)

        assert second.id == first.id
        assert second.status is FailedWorkStatus.PENDING
        assert second.retry_count == 1
        assert second.error_message == "HTTP 500"
        assert second.first_failed_at == now
        assert second.last_failed_at == later

    def test_resolved_items_stay_resolved(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "timeout", now=now)
        failed_work.mark_resolved(item.id, now)
        again = failed_work.record_failure("wh-1", "/x", "timeout", now=now + timedelta(hours=1))
        assert again.status is FailedWorkStatus.RESOLVED


class TestRetryable:
    """Test the retry window."""

    def test_window(self, failed_work, now):
        """Only items between min age and lookback are returned, oldest first."""
        failed_work.record_failure("too-young", "/x", "e", now=now - timedelta(minutes=1))
        failed_work.record_failure("too-old", "/x", "e", now=now - timedelta(hours=25))
        newer = failed_work.record_failure("newer", "/x", "e", now=now - timedelta(minutes=10))
        older = failed_work.record_failure("older", "/x", "e", now=now - timedelta(hours=2))

        items = failed_work.list_retryable(now, LOOKBACK, MIN_AGE)
        assert [i.id for i in items] == [older.id, newer.id]

    def test_budget_exhausted(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "e", now=now - timedelta(hours=1))
        for _ in range(3):
            assert failed_work.claim(item.id, now - timedelta(hours=1)) is True
            failed_work.mark_failed(item.id, "still failing", now - timedelta(hours=1))

        stored = failed_work.get(item.id)
        assert stored.retry_count == 3
        assert stored.can_retry() is False
        assert failed_work.list_retryable(now, LOOKBACK, MIN_AGE) == []


class TestClaim:
    """Test the pending → retrying hand-off."""

    def test_claim_once(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "e", now=now)
        attempt = now + timedelta(minutes=10)
        assert failed_work.claim(item.id, attempt) is True
        assert failed_work.claim(item.id, attempt) is False

        stored = failed_work.get(item.id)
        assert stored.status is FailedWorkStatus.RETRYING
        assert stored.retry_count == 1
        assert stored.first_failed_at == now
        assert stored.last_failed_at == attempt

    def test_mark_failed_returns_to_pending(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "e", now=now)
        failed_work.claim(item.id)
        assert failed_work.mark_failed(item.id, "queue down", now + timedelta(minutes=1)) is True

        stored = failed_work.get(item.id)
        assert stored.status is FailedWorkStatus.PENDING
        assert stored.error_message == "queue down"
        assert stored.last_failed_at == now + timedelta(minutes=1)

    def test_mark_failed_requires_claim(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "e", now=now)
        assert failed_work.mark_failed(item.id, "x", now) is False

    def test_resolve(self, failed_work, now):
        item = failed_work.record_failure("wh-1", "/x", "e", now=now)
        assert failed_work.mark_resolved(item.id, now) is True
        assert failed_work.mark_resolved(item.id, now) is False
        stored = failed_work.get(item.id)
        assert stored.status is FailedWorkStatus.RESOLVED
        assert stored.resolved_at == now

    def test_list_all_by_status(self, failed_work, now):
        a = failed_work.record_failure("wh-1", "/x", "e", now=now)
        failed_work.record_failure("wh-2", "/x", "e", now=now)
        failed_work.mark_resolved(a.id, now)
        assert len(failed_work.list_all()) == 2
        assert [i.id for i in failed_work.list_all(FailedWorkStatus.RESOLVED)] == [a.id]


class TestFailedWorkItem:
    """Test the model helpers."""

    def test_can_retry(self):
        item = FailedWorkItem(id="fw-1", webhook_job_id="wh-1", endpoint="/x", retry_count=2, max_retries=3)
        assert item.can_retry() is True
        item.status = FailedWorkStatus.RETRYING
        assert item.can_retry() is False

    def test_to_dict(self):
        item = FailedWorkItem(id="fw-1", webhook_job_id="wh-1", endpoint="/x")
        data = item.to_dict()
        assert data["status"] == "pending"
        assert data["last_failed_at"] is None
