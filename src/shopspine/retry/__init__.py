"""Failed work items and the retry sweep."""

from .models import FailedWorkItem, FailedWorkStatus
from .repository import FailedWorkRepository
from .sweep import (
    RETRY_JOB_KIND,
    RetrySweep,
    RetrySweepResult,
    get_retry_handler,
    register_retry_handler,
    reset_retry_handler,
)

__all__ = [
    "FailedWorkItem",
    "FailedWorkStatus",
    "FailedWorkRepository",
    "RETRY_JOB_KIND",
    "RetrySweep",
    "RetrySweepResult",
    "register_retry_handler",
    "get_retry_handler",
    "reset_retry_handler",
]
