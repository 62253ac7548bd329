"""Outbound notification dispatch with delivery idempotency.

For each notification: skip it without an ``event_id``; skip it when the
ledger already holds ``(id, channel)``; otherwise build the payload, send,
and record the delivery. A failed send is logged and left for the next
dispatch run; it is never recorded.

:func:`dispatch_configured` wires the Slack channel from
:class:`~shopspine.core.settings.SchedulerSettings` and delivers nothing
(returns 0) while the bot token or the destination channel is unset.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

import httpx

from shopspine.core.errors import InvalidConfigError, error_message
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection, NotificationChannel
from shopspine.core.settings import SchedulerSettings, get_settings
from shopspine.core.timestamps import utcnow
from shopspine.notifications.ledger import DeliveryLedger
from shopspine.notifications.models import DeliveryRecord, Notification
from shopspine.notifications.slack import SlackWebApiChannel, build_slack_payload

logger = get_logger(__name__)

PayloadBuilder = Callable[[Notification, str], dict[str, Any]]

SUPPORTED_CHANNELS = ("slack",)


class NotificationDispatcher:
    """Sends feed notifications to one channel exactly once.

    Example:
        >>> dispatcher = NotificationDispatcher(DeliveryLedger(conn), SlackWebApiChannel(token))
        >>> dispatcher.dispatch(feed, "#ops-alerts")
        3
    """

    def __init__(
        self,
        ledger: DeliveryLedger,
        sender: NotificationChannel,
        channel: str = "slack",
        *,
        payload_builder: PayloadBuilder = build_slack_payload,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ledger = ledger
        self.sender = sender
        self.channel = channel
        self.payload_builder = payload_builder
        self._clock = clock

    def dispatch(self, notifications: Iterable[Notification | dict[str, Any]], destination: str) -> int:
        """Send every eligible notification; returns how many were newly delivered."""
        delivered = 0
        for entry in notifications:
            notification = entry if isinstance(entry, Notification) else Notification.from_dict(entry)
            if self._deliver(notification, destination):
                delivered += 1
        logger.info("notification_dispatch_completed", channel=self.channel, delivered=delivered)
        return delivered

    def _deliver(self, notification: Notification, destination: str) -> bool:
        if not notification.event_id:
            return False
        if self.ledger.has_delivered(self.channel, notification.id):
            logger.debug("notification_already_delivered", notification_id=notification.id, channel=self.channel)
            return False

        payload = self.payload_builder(notification, destination)
        try:
            sent = self.sender.send(destination, notification.id, payload)
        except Exception as e:
            logger.warning(
                "notification_dispatch_failed",
                notification_id=notification.id,
                event_id=notification.event_id,
                channel=self.channel,
                error=error_message(e),
            )
            return False

        if not sent:
            logger.warning(
                "notification_dispatch_rejected",
                notification_id=notification.id,
                event_id=notification.event_id,
                channel=self.channel,
            )
            return False

        return self.ledger.record(
            DeliveryRecord(
                notification_id=notification.id,
                channel=self.channel,
                event_id=notification.event_id,
                payload=payload,
                delivered_at=self._clock(),
            )
        )


def dispatch_configured(
    conn: Connection,
    notifications: Iterable[Notification | dict[str, Any]],
    destination: str | None = None,
    *,
    settings: SchedulerSettings | None = None,
    client: httpx.Client | None = None,
) -> int:
    """Dispatch through the channel named by ``settings.notification_channel``.

    ``destination`` defaults to ``slack_default_channel``. Without a bot
    token or a destination nothing is sent and 0 is returned.

    Raises:
        InvalidConfigError: ``notification_channel`` is not a supported channel
    """
    settings = settings or get_settings()
    if settings.notification_channel not in SUPPORTED_CHANNELS:
        raise InvalidConfigError(
            "notification_channel",
            settings.notification_channel,
            f"Unsupported notification channel: {settings.notification_channel!r}",
        )

    destination = destination or settings.slack_default_channel
    if not settings.slack_bot_token or not destination:
        logger.info(
            "notification_dispatch_not_configured",
            channel=settings.notification_channel,
            has_token=bool(settings.slack_bot_token),
            has_destination=bool(destination),
        )
        return 0

    sender = SlackWebApiChannel(settings.slack_bot_token, client=client, timeout=settings.slack_timeout_seconds)
    try:
        dispatcher = NotificationDispatcher(DeliveryLedger(conn), sender, settings.notification_channel)
        return dispatcher.dispatch(notifications, destination)
    finally:
        sender.close()


__all__ = ["NotificationDispatcher", "dispatch_configured"]
