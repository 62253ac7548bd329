"""Failed work item store.

ARCHITECTURE
────────────
::

    FailedWorkRepository(conn)
      ├── .record_failure(webhook_job_id, endpoint, error, ...)  ─ insert or bump
      ├── .list_retryable(now, lookback, min_age)                ─ sweep candidates
      ├── .claim(id, now)          ─ pending → retrying, retry_count + 1 (conditional)
      ├── .mark_failed(id, error)  ─ retrying → pending with the new error
      ├── .mark_resolved(id)       ─ → resolved
      └── .get(id) / .get_by_webhook_job(id) / .list_all(status?)

A candidate is pending, under its retry budget, and last failed inside
``[now - lookback, now - min_age]``: old enough that no attempt is still
in flight, recent enough to be worth another try.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from shopspine.core.dialect import Dialect, SQLiteDialect
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection
from shopspine.core.timestamps import from_db, to_db, utcnow
from shopspine.retry.models import FailedWorkItem, FailedWorkStatus

logger = get_logger(__name__)

_COLUMNS = [
    "id",
    "webhook_job_id",
    "shop_id",
    "endpoint",
    "status",
    "retry_count",
    "max_retries",
    "error_message",
    "context",
    "first_failed_at",
    "last_failed_at",
    "resolved_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM failed_work_items"


class FailedWorkRepository:
    """Persistence for :class:`FailedWorkItem`."""

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        max_retries: int = 3,
    ) -> None:
        self.conn = conn
        self.dialect = dialect or SQLiteDialect()
        self.max_retries = max_retries

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def record_failure(
        self,
        webhook_job_id: str,
        endpoint: str,
        error: str,
        *,
        shop_id: int | None = None,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> FailedWorkItem:
        """Record a failed attempt for ``webhook_job_id``.

        The first failure inserts a pending item; later failures move the
        existing item back to pending with the new error and timestamp.
        """
        ts = to_db(now or utcnow())
        existing = self.get_by_webhook_job(webhook_job_id)
        if existing is None:
            item_id = str(uuid4())
            self.conn.execute(
                f"""
                INSERT INTO failed_work_items (
                    id, webhook_job_id, shop_id, endpoint, status,
                    retry_count, max_retries, error_message, context,
                    first_failed_at, last_failed_at
                ) VALUES ({self._ph(11)})
                """,
                (
                    item_id,
                    webhook_job_id,
                    shop_id,
                    endpoint,
                    FailedWorkStatus.PENDING.value,
                    0,
                    self.max_retries,
                    error,
                    json.dumps(context) if context else None,
                    ts,
                    ts,
                ),
            )
            self.conn.commit()
            logger.info("failed_work_recorded", item_id=item_id, webhook_job_id=webhook_job_id, endpoint=endpoint)
            return self.get(item_id)

        self.conn.execute(
            f"""
            UPDATE failed_work_items
            SET status = {self._ph()}, error_message = {self._ph()}, last_failed_at = {self._ph()}
            WHERE id = {self._ph()} AND status != {self._ph()}
            """,
            (
                FailedWorkStatus.PENDING.value,
                error,
                ts,
                existing.id,
                FailedWorkStatus.RESOLVED.value,
            ),
        )
        self.conn.commit()
        logger.info(
            "failed_work_bumped",
            item_id=existing.id,
            webhook_job_id=webhook_job_id,
            retry_count=existing.retry_count,
        )
        return self.get(existing.id)

    def get(self, item_id: str) -> FailedWorkItem | None:
        cursor = self.conn.execute(f"{_SELECT} WHERE id = {self._ph()}", (item_id,))
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    def get_by_webhook_job(self, webhook_job_id: str) -> FailedWorkItem | None:
        cursor = self.conn.execute(f"{_SELECT} WHERE webhook_job_id = {self._ph()}", (webhook_job_id,))
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    def list_all(self, status: FailedWorkStatus | None = None, limit: int = 100) -> list[FailedWorkItem]:
        if status is None:
            cursor = self.conn.execute(
                f"{_SELECT} ORDER BY last_failed_at DESC LIMIT {self._ph()}",
                (limit,),
            )
        else:
            cursor = self.conn.execute(
                f"{_SELECT} WHERE status = {self._ph()} ORDER BY last_failed_at DESC LIMIT {self._ph()}",
                (status.value, limit),
            )
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def list_retryable(
        self,
        now: datetime,
        lookback: timedelta,
        min_age: timedelta,
    ) -> list[FailedWorkItem]:
        """Pending items under budget that last failed in ``[now - lookback, now - min_age]``."""
        cursor = self.conn.execute(
            f"""
            {_SELECT}
            WHERE status = {self._ph()}
              AND retry_count < max_retries
              AND last_failed_at >= {self._ph()}
              AND last_failed_at <= {self._ph()}
            ORDER BY last_failed_at
            """,
            (FailedWorkStatus.PENDING.value, to_db(now - lookback), to_db(now - min_age)),
        )
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def claim(self, item_id: str, now: datetime | None = None) -> bool:
        """Move a pending item to ``retrying``. False if someone else got there first.

        ``last_failed_at`` is stamped with the attempt time so ordering and the
        lookback window follow the latest attempt.
        """
        cursor = self.conn.execute(
            f"""
            UPDATE failed_work_items
            SET status = {self._ph()}, retry_count = retry_count + 1, last_failed_at = {self._ph()}
            WHERE id = {self._ph()}
              AND status = {self._ph()}
              AND retry_count < max_retries
            """,
            (
                FailedWorkStatus.RETRYING.value,
                to_db(now or utcnow()),
                item_id,
                FailedWorkStatus.PENDING.value,
            ),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def mark_failed(self, item_id: str, error: str, now: datetime | None = None) -> bool:
        cursor = self.conn.execute(
            f"""
            UPDATE failed_work_items
            SET status = {self._ph()}, error_message = {self._ph()}, last_failed_at = {self._ph()}
            WHERE id = {self._ph()} AND status = {self._ph()}
            """,
            (
                FailedWorkStatus.PENDING.value,
                error,
                to_db(now or utcnow()),
                item_id,
                FailedWorkStatus.RETRYING.value,
            ),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def mark_resolved(self, item_id: str, now: datetime | None = None) -> bool:
        cursor = self.conn.execute(
            f"""
            UPDATE failed_work_items
            SET status = {self._ph()}, resolved_at = {self._ph()}
            WHERE id = {self._ph()} AND status != {self._ph()}
            """,
            (
                FailedWorkStatus.RESOLVED.value,
                to_db(now or utcnow()),
                item_id,
                FailedWorkStatus.RESOLVED.value,
            ),
        )
        self.conn.commit()
        resolved = cursor.rowcount == 1
        if resolved:
            logger.info("failed_work_resolved", item_id=item_id)
        return resolved

    @staticmethod
    def _row_to_item(row: Any) -> FailedWorkItem:
        data = dict(zip(_COLUMNS, tuple(row)))
        return FailedWorkItem(
            id=data["id"],
            webhook_job_id=data["webhook_job_id"],
            endpoint=data["endpoint"],
            shop_id=data["shop_id"],
            status=FailedWorkStatus(data["status"]),
            retry_count=data["retry_count"] or 0,
            max_retries=data["max_retries"] or 3,
            error_message=data["error_message"],
            context=json.loads(data["context"]) if data["context"] else {},
            first_failed_at=from_db(data["first_failed_at"]),
            last_failed_at=from_db(data["last_failed_at"]),
            resolved_at=from_db(data["resolved_at"]),
        )


__all__ = ["FailedWorkRepository"]
