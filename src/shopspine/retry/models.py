"""Failed work items awaiting a retry.

A webhook-driven import (an order or product snapshot) that failed is
recorded once per webhook job. The retry sweep picks pending items back
up; each pickup moves the item to ``retrying`` and bumps ``retry_count``
so the same item is handed out at most once per sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class FailedWorkStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"


@dataclass
class FailedWorkItem:
    """A failed snapshot/import attempt.

    Example:
        >>> item = FailedWorkItem(
        ...     id="fw-1",
        ...     webhook_job_id="wh-123",
        ...     endpoint="/api/orders/2025-0001",
        ...     shop_id=7,
        ...     error_message="Connection timeout",
        ... )
        >>> item.can_retry()
        True
    """

    id: str
    webhook_job_id: str
    endpoint: str
    shop_id: int | None = None
    status: FailedWorkStatus = FailedWorkStatus.PENDING
    retry_count: int = 0
    max_retries: int = 3
    error_message: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    first_failed_at: datetime | None = None
    last_failed_at: datetime | None = None
    resolved_at: datetime | None = None

    def can_retry(self) -> bool:
        """Pending and still under the retry budget."""
        return self.status is FailedWorkStatus.PENDING and self.retry_count < self.max_retries

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "webhook_job_id": self.webhook_job_id,
            "endpoint": self.endpoint,
            "shop_id": self.shop_id,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "error_message": self.error_message,
            "context": self.context,
            "first_failed_at": self.first_failed_at.isoformat() if self.first_failed_at else None,
            "last_failed_at": self.last_failed_at.isoformat() if self.last_failed_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


__all__ = ["FailedWorkStatus", "FailedWorkItem"]
