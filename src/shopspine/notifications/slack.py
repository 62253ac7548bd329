"""Slack message formatting and the Web API channel.

ARCHITECTURE
────────────
::

    format_message(notification)         ─ mrkdwn text
        ":x: *Order sync failed*"
        "Timeout while fetching orders"
        "_Orders Sync_"                    (module headline)
        "Shop: Demo shop"                  (metadata.shop_name)

    build_slack_payload(notification, destination)
        {"channel", "text", "mrkdwn": True, "blocks": [section]}

    SlackWebApiChannel(token).send(destination, notification_id, payload)
        POST https://slack.com/api/chat.postMessage  → ok?
"""

from __future__ import annotations

import re
from typing import Any

import httpx

from shopspine.core.errors import DeliveryError
from shopspine.core.logging import get_logger
from shopspine.notifications.models import Notification

logger = get_logger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"
DEFAULT_TITLE = "Notification"

SEVERITY_EMOJI = {
    "success": ":white_check_mark:",
    "warning": ":warning:",
    "error": ":x:",
}
DEFAULT_EMOJI = ":information_source:"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s_\-.]+")


def headline(value: str) -> str:
    """``inventory_stock-guard`` / ``inventoryStockGuard`` → ``Inventory Stock Guard``."""
    words = _SEPARATORS.split(_CAMEL_BOUNDARY.sub(" ", value))
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def format_message(notification: Notification) -> str:
    emoji = SEVERITY_EMOJI.get(notification.severity or "info", DEFAULT_EMOJI)
    title = (notification.title or DEFAULT_TITLE).strip()
    message = (notification.message or "").strip()

    lines = [f"{emoji} *{title}*"]
    if message:
        lines.append(message)
    if notification.module:
        lines.append(f"_{headline(notification.module)}_")
    shop_name = notification.metadata.get("shop_name")
    if shop_name:
        lines.append(f"Shop: {shop_name}")
    return "\n".join(lines)


def build_slack_payload(notification: Notification, destination: str) -> dict[str, Any]:
    text = format_message(notification)
    return {
        "channel": destination,
        "text": text,
        "mrkdwn": True,
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": text},
            }
        ],
    }


class SlackWebApiChannel:
    """:class:`~shopspine.core.protocols.NotificationChannel` over ``chat.postMessage``.

    Transport errors raise :class:`~shopspine.core.errors.DeliveryError`; an
    HTTP error status or ``ok != true`` in the response body returns False.
    An injected ``client`` belongs to the caller and is not closed.
    """

    def __init__(
        self,
        token: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        url: str = SLACK_POST_MESSAGE_URL,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    def send(self, channel: str, notification_id: str, payload: dict[str, Any]) -> bool:
        try:
            response = self._client.post(self.url, json={**payload, "channel": channel}, headers=self._headers)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Slack request failed: {e}", cause=e) from e
        body: Any = None
        if response.headers.get("content-type", "").startswith("application/json"):
            body = response.json()
        ok = response.is_success and isinstance(body, dict) and body.get("ok") is True
        if not ok:
            logger.warning(
                "slack_post_rejected",
                notification_id=notification_id,
                status=response.status_code,
                error=body.get("error") if isinstance(body, dict) else None,
            )
        return ok

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = [
    "SLACK_POST_MESSAGE_URL",
    "DEFAULT_TITLE",
    "SEVERITY_EMOJI",
    "headline",
    "format_message",
    "build_slack_payload",
    "SlackWebApiChannel",
]
