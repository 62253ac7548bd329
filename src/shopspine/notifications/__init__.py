"""Outbound notifications with a per-channel delivery ledger."""

from .dispatcher import NotificationDispatcher, dispatch_configured
from .ledger import DeliveryLedger
from .models import DeliveryRecord, Notification, Severity
from .slack import SlackWebApiChannel, build_slack_payload, format_message, headline

__all__ = [
    "Notification",
    "Severity",
    "DeliveryRecord",
    "DeliveryLedger",
    "NotificationDispatcher",
    "dispatch_configured",
    "SlackWebApiChannel",
    "build_slack_payload",
    "format_message",
    "headline",
]
