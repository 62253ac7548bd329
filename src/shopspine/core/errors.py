"""
Structured error types for the scheduling engine.

Every error raised by shopspine extends ShopSpineError and carries a
category, a retry hint, structured context, and an optional chained cause.
The sweep and the worker use the category to decide whether a failure is a
configuration problem (record and move on), contention (expected, quiet),
an execution failure (record ``failed``), or a store failure (log, continue).

Manifesto:
    - **Typed Error Hierarchy:** One subclass per failure domain
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry schedule/job metadata for logging
    - **Error Chaining:** Original exceptions preserved as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                      ShopSpineError                           │
        │            (category, retryable, context, cause)              │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConfigError            SchedulingError       StoreError      │
        │  (CONFIG)               (SCHEDULING)          (DATABASE)      │
        │     │                       │                                 │
        │  InvalidConfigError     ScheduleNotFoundError  LockError      │
        │  InvalidCronError       InvalidTransitionError (LOCK)         │
        │  UnknownJobTypeError                                          │
        │  OptionsValidationError                       DeliveryError   │
        │                                               (DELIVERY)      │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> err = InvalidCronError("*/61 * * * *")
    >>> err.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> err.retryable
    False

    >>> try:
    ...     raise OSError("disk full")
    ... except OSError as e:
    ...     raise StoreError("Failed to persist run state", cause=e)
    Traceback (most recent call last):
    ...
    StoreError: Failed to persist run state

Guardrails:
    ❌ DON'T: Raise bare Exception from engine code
    ✅ DO: Pick the ShopSpineError subclass that matches the failure domain

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, scheduling, shopspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"              # Invalid cron, unknown job type, bad options
    VALIDATION = "VALIDATION"      # Rejected input at write time
    SCHEDULING = "SCHEDULING"      # Missing schedule, illegal state transition
    DATABASE = "DATABASE"          # Store read/write failures
    LOCK = "LOCK"                  # Lock provider failures (not contention)
    DELIVERY = "DELIVERY"          # Notification channel failures
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        schedule_id: Schedule the error relates to
        job_type: Job type tag of the schedule
        lock_name: Lock name involved, if any
        channel: Notification channel, if any
        metadata: Additional key-value pairs
    """

    schedule_id: str | None = None
    job_type: str | None = None
    lock_name: str | None = None
    channel: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["schedule_id", "job_type", "lock_name", "channel"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ShopSpineError(Exception):
    """
    Base exception for all shopspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely need to pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ShopSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StoreError("Update failed").with_context(schedule_id=sid)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (never retryable)
# =============================================================================


class ConfigError(ShopSpineError):
    """Configuration error: a schedule or setting cannot be used as written."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Setting has an invalid value."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        msg = message or f"Invalid value for {key}: {value!r}"
        super().__init__(msg)
        self.key = key
        self.value = value


class InvalidCronError(ConfigError):
    """Cron expression does not parse."""

    def __init__(self, expression: str | None, message: str | None = None):
        super().__init__(message or f"Invalid cron expression: {expression!r}")
        self.expression = expression


class UnknownJobTypeError(ConfigError):
    """Job type is not present in the catalog."""

    def __init__(self, job_type: str):
        super().__init__(f"Unknown job schedule type [{job_type}]")
        self.job_type = job_type


class OptionsValidationError(ConfigError):
    """Per-job-type options failed validation."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, job_type: str, errors: dict[str, str]):
        fields = ", ".join(sorted(errors))
        super().__init__(f"Invalid options for {job_type}: {fields}")
        self.job_type = job_type
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["errors"] = dict(self.errors)
        return result


# =============================================================================
# SCHEDULING ERRORS
# =============================================================================


class SchedulingError(ShopSpineError):
    """Error in schedule bookkeeping."""

    default_category = ErrorCategory.SCHEDULING
    default_retryable = False


class ScheduleNotFoundError(SchedulingError):
    """Schedule id does not exist."""

    def __init__(self, schedule_id: str):
        super().__init__(f"Schedule not found: {schedule_id}")
        self.schedule_id = schedule_id
        self.context.schedule_id = schedule_id


class InvalidTransitionError(SchedulingError):
    """A writer attempted a run-state change the state machine forbids."""

    def __init__(self, schedule_id: str | None, current: str | None, target: str, writer: str | None = None):
        origin = current or "none"
        who = f" by {writer}" if writer else ""
        super().__init__(f"Illegal run-state transition {origin} -> {target}{who}")
        self.schedule_id = schedule_id
        self.current = current
        self.target = target
        self.writer = writer
        self.context.schedule_id = schedule_id


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class StoreError(ShopSpineError):
    """Schedule/ledger store read or write failed."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class LockError(ShopSpineError):
    """Lock provider failed (contention is not an error and never raises this)."""

    default_category = ErrorCategory.LOCK
    default_retryable = True


class DeliveryError(ShopSpineError):
    """Notification channel rejected or failed a send."""

    default_category = ErrorCategory.DELIVERY
    default_retryable = True


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Return the retry hint of a ShopSpineError, False for anything else."""
    if isinstance(error, ShopSpineError):
        return error.retryable
    return False


def categorize_error(error: Exception) -> ErrorCategory:
    """Best-effort category for arbitrary exceptions."""
    if isinstance(error, ShopSpineError):
        return error.category
    if isinstance(error, (ValueError, TypeError, KeyError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.INTERNAL


def error_message(error: BaseException) -> str:
    """Operator-facing text for an exception (class name when the message is empty)."""
    text = str(error).strip()
    return text or error.__class__.__name__


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ShopSpineError",
    "ConfigError",
    "InvalidConfigError",
    "InvalidCronError",
    "UnknownJobTypeError",
    "OptionsValidationError",
    "SchedulingError",
    "ScheduleNotFoundError",
    "InvalidTransitionError",
    "StoreError",
    "LockError",
    "DeliveryError",
    "is_retryable",
    "categorize_error",
    "error_message",
]
