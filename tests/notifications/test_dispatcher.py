"""Tests for NotificationDispatcher."""

from __future__ import annotations

import httpx
import pytest

from shopspine.core.errors import InvalidConfigError
from shopspine.core.settings import SchedulerSettings
from shopspine.notifications.dispatcher import NotificationDispatcher, dispatch_configured
from shopspine.notifications.ledger import DeliveryLedger
from shopspine.notifications.models import Notification


class FakeChannel:
    """Records sends; ``result`` decides the outcome."""

    def __init__(self, result=True):
        self.result = result
        self.sent = []

    def send(self, channel, notification_id, payload):
        self.sent.append((channel, notification_id, payload))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def ledger(db_conn) -> DeliveryLedger:
    return DeliveryLedger(db_conn)


def _feed():
    return [
        {"id": "n-1", "event_id": "evt-1", "title": "Order sync failed", "severity": "error"},
        {"id": "n-2", "event_id": None, "title": "Local only"},
        Notification(id="n-3", event_id="evt-3", title="Import finished", severity="success"),
    ]


class TestNotificationDispatcher:
    """Test exactly-once delivery."""

    def test_delivers_eligible(self, ledger, clock):
        channel = FakeChannel()
        dispatcher = NotificationDispatcher(ledger, channel, clock=clock)

        assert dispatcher.dispatch(_feed(), "#ops") == 2

        assert [sent[1] for sent in channel.sent] == ["n-1", "n-3"]
        assert channel.sent[0][2]["text"] == ":x: *Order sync failed*"
        assert ledger.get("slack", "n-1").delivered_at == clock()
        assert ledger.has_delivered("slack", "n-2") is False

    def test_second_dispatch_sends_nothing(self, ledger):
        channel = FakeChannel()
        dispatcher = NotificationDispatcher(ledger, channel)
        dispatcher.dispatch(_feed(), "#ops")

        assert dispatcher.dispatch(_feed(), "#ops") == 0
        assert len(channel.sent) == 2

    def test_rejected_send_is_not_recorded(self, ledger):
        """A refused delivery is retried on the next dispatch."""
        channel = FakeChannel(result=False)
        dispatcher = NotificationDispatcher(ledger, channel)
        assert dispatcher.dispatch(_feed(), "#ops") == 0
        assert ledger.count() == 0

        channel.result = True
        assert dispatcher.dispatch(_feed(), "#ops") == 2

    def test_send_error_is_contained(self, ledger):
        channel = FakeChannel(result=ConnectionError("slack down"))
        dispatcher = NotificationDispatcher(ledger, channel)
        assert dispatcher.dispatch(_feed(), "#ops") == 0
        assert ledger.count() == 0

    def test_channel_name_scopes_ledger(self, ledger):
        slack = NotificationDispatcher(ledger, FakeChannel(), channel="slack")
        email = NotificationDispatcher(ledger, FakeChannel(), channel="email")
        slack.dispatch(_feed(), "#ops")
        assert email.dispatch(_feed(), "ops@example.com") == 2
        assert ledger.count() == 4

    def test_custom_payload_builder(self, ledger):
        channel = FakeChannel()
        dispatcher = NotificationDispatcher(
            ledger, channel, payload_builder=lambda n, dest: {"subject": n.title, "to": dest}
        )
        dispatcher.dispatch([{"id": "n-9", "event_id": "e", "title": "Hi"}], "ops@example.com")
        assert channel.sent[0][2] == {"subject": "Hi", "to": "ops@example.com"}


def _slack_client(seen, response=None):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if response is None:
            raise httpx.ConnectError("no route", request=request)
        return response

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestDispatchConfigured:
    """Test dispatch wired from settings."""

    def test_without_token_sends_nothing(self, db_conn):
        seen = []
        settings = SchedulerSettings(slack_bot_token=None, slack_default_channel="#ops")
        client = _slack_client(seen, httpx.Response(200, json={"ok": True}))

        assert dispatch_configured(db_conn, _feed(), settings=settings, client=client) == 0
        assert seen == []

    def test_without_destination_sends_nothing(self, db_conn):
        seen = []
        settings = SchedulerSettings(slack_bot_token="xoxb-test", slack_default_channel=None)
        client = _slack_client(seen, httpx.Response(200, json={"ok": True}))

        assert dispatch_configured(db_conn, _feed(), settings=settings, client=client) == 0
        assert seen == []

    def test_delivers_to_default_channel(self, db_conn):
        seen = []
        settings = SchedulerSettings(slack_bot_token="xoxb-test", slack_default_channel="#ops")
        client = _slack_client(seen, httpx.Response(200, json={"ok": True}))

        assert dispatch_configured(db_conn, _feed(), settings=settings, client=client) == 2
        assert len(seen) == 2
        assert seen[0].headers["Authorization"] == "Bearer xoxb-test"
        assert DeliveryLedger(db_conn).has_delivered("slack", "n-1") is True

    def test_explicit_destination(self, db_conn):
        seen = []
        settings = SchedulerSettings(slack_bot_token="xoxb-test", slack_default_channel=None)
        client = _slack_client(seen, httpx.Response(200, json={"ok": True}))

        assert dispatch_configured(db_conn, _feed(), "#alerts", settings=settings, client=client) == 2

    def test_transport_failure_is_not_recorded(self, db_conn):
        seen = []
        settings = SchedulerSettings(slack_bot_token="xoxb-test", slack_default_channel="#ops")
        client = _slack_client(seen)

        assert dispatch_configured(db_conn, _feed(), settings=settings, client=client) == 0
        assert len(seen) == 2
        assert DeliveryLedger(db_conn).count() == 0

    def test_unsupported_channel(self, db_conn):
        settings = SchedulerSettings(notification_channel="email", slack_bot_token="xoxb-test")
        with pytest.raises(InvalidConfigError) as exc_info:
            dispatch_configured(db_conn, _feed(), settings=settings)
        assert exc_info.value.key == "notification_channel"
        assert exc_info.value.value == "email"
