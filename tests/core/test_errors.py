"""Tests for the error hierarchy."""

from __future__ import annotations

from shopspine.core.errors import (
    ErrorCategory,
    InvalidCronError,
    LockError,
    ScheduleNotFoundError,
    ShopSpineError,
    StoreError,
    UnknownJobTypeError,
    categorize_error,
    error_message,
    is_retryable,
)


class TestErrorHierarchy:
    """Test messages, categories and retry hints."""

    def test_messages(self):
        assert str(InvalidCronError("* *")) == "Invalid cron expression: '* *'"
        assert str(UnknownJobTypeError("foo.bar")) == "Unknown job schedule type [foo.bar]"
        assert str(ScheduleNotFoundError("s-1")) == "Schedule not found: s-1"

    def test_categories(self):
        assert InvalidCronError("x").category is ErrorCategory.CONFIG
        assert ScheduleNotFoundError("s-1").category is ErrorCategory.SCHEDULING
        assert StoreError("db gone").category is ErrorCategory.DATABASE

    def test_retryable(self):
        assert is_retryable(LockError("lock table missing")) is True
        assert is_retryable(InvalidCronError("x")) is False
        assert is_retryable(RuntimeError("x")) is False

    def test_cause_and_context(self):
        cause = ValueError("bad")
        error = StoreError("write failed", cause=cause).with_context(schedule_id="s-1")
        assert error.cause is cause
        data = error.to_dict()
        assert data["error_type"] == "StoreError"
        assert data["message"] == "write failed"
        assert data["context"] == {"schedule_id": "s-1"}
        assert data["cause"] == "bad"

    def test_categorize_foreign_errors(self):
        assert categorize_error(KeyError("x")) is ErrorCategory.VALIDATION
        assert categorize_error(RuntimeError("x")) is ErrorCategory.INTERNAL
        assert categorize_error(ShopSpineError("x")) is ErrorCategory.INTERNAL

    def test_error_message(self):
        assert error_message(RuntimeError("  boom ")) == "boom"
        assert error_message(TimeoutError()) == "TimeoutError"
