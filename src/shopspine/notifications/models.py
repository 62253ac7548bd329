"""Notification and delivery record types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """One entry of the notification feed.

    ``id`` identifies the notification itself; ``event_id`` names the kind
    of event it reports (``orders.sync_failed``). Entries without an
    ``event_id`` are never sent to an outbound channel.
    """

    id: str
    event_id: str | None = None
    title: str | None = None
    message: str | None = None
    severity: str = Severity.INFO.value
    module: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Notification:
        return cls(
            id=str(data["id"]),
            event_id=data.get("event_id"),
            title=data.get("title"),
            message=data.get("message"),
            severity=data.get("severity") or Severity.INFO.value,
            module=data.get("module"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class DeliveryRecord:
    """Proof that ``notification_id`` went out on ``channel``."""

    notification_id: str
    channel: str
    event_id: str | None
    payload: dict[str, Any]
    delivered_at: datetime


__all__ = ["Severity", "Notification", "DeliveryRecord"]
