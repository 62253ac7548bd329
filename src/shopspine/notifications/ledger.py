"""
Delivery ledger: which notification went out on which channel.

Manifesto:
    A notification must never reach the same channel twice. The
    ``(notification_id, channel)`` unique constraint is the authority; the
    ``has_delivered`` lookup only saves a send in the common case. A record
    whose insert hits the constraint was delivered by someone else first,
    which is an expected outcome and not an error.

Architecture:
    ::

        dispatcher                       notification_deliveries
            │  has_delivered(ch, id) ──► SELECT 1 WHERE id, channel
            │  send(...)
            └─ record(DeliveryRecord) ─► INSERT OR IGNORE
                                            rowcount 1 → True  (first delivery)
                                            rowcount 0 → False (already there)

Tags:
    idempotency, notifications, ledger, shopspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import json

from shopspine.core.dialect import Dialect, SQLiteDialect
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection
from shopspine.core.timestamps import from_db, to_db
from shopspine.notifications.models import DeliveryRecord

logger = get_logger(__name__)

_INSERT_COLUMNS = ["notification_id", "event_id", "channel", "payload", "delivered_at"]


class DeliveryLedger:
    """Idempotency store for outbound notifications.

    Example:
        >>> ledger = DeliveryLedger(conn)
        >>> ledger.has_delivered("slack", "n-1")
        False
        >>> ledger.record(DeliveryRecord("n-1", "slack", "orders.sync_failed", {}, utcnow()))
        True
        >>> ledger.has_delivered("slack", "n-1")
        True
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None):
        self.conn = conn
        self.dialect = dialect or SQLiteDialect()

    def has_delivered(self, channel: str, notification_id: str) -> bool:
        ph = self.dialect.placeholders(1)
        cursor = self.conn.execute(
            f"""
            SELECT 1 FROM notification_deliveries
            WHERE channel = {ph} AND notification_id = {ph}
            """,
            (channel, notification_id),
        )
        return cursor.fetchone() is not None

    def record(self, record: DeliveryRecord) -> bool:
        """Insert a delivery. Returns False when the pair was already recorded."""
        cursor = self.conn.execute(
            self.dialect.insert_or_ignore("notification_deliveries", _INSERT_COLUMNS),
            (
                record.notification_id,
                record.event_id,
                record.channel,
                json.dumps(record.payload),
                to_db(record.delivered_at),
            ),
        )
        self.conn.commit()
        inserted = cursor.rowcount == 1
        if not inserted:
            logger.info(
                "notification_already_recorded",
                notification_id=record.notification_id,
                channel=record.channel,
            )
        return inserted

    def get(self, channel: str, notification_id: str) -> DeliveryRecord | None:
        ph = self.dialect.placeholders(1)
        cursor = self.conn.execute(
            f"""
            SELECT notification_id, channel, event_id, payload, delivered_at
            FROM notification_deliveries
            WHERE channel = {ph} AND notification_id = {ph}
            """,
            (channel, notification_id),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        notification_id, channel, event_id, payload, delivered_at = tuple(row)
        return DeliveryRecord(
            notification_id=notification_id,
            channel=channel,
            event_id=event_id,
            payload=json.loads(payload) if payload else {},
            delivered_at=from_db(delivered_at),
        )

    def count(self, channel: str | None = None) -> int:
        if channel is None:
            cursor = self.conn.execute("SELECT COUNT(*) FROM notification_deliveries")
        else:
            cursor = self.conn.execute(
                f"SELECT COUNT(*) FROM notification_deliveries WHERE channel = {self.dialect.placeholders(1)}",
                (channel,),
            )
        return cursor.fetchone()[0]


__all__ = ["DeliveryLedger"]
