"""Lock providers: named, TTL'd, non-blocking mutual exclusion.

Manifesto:
    At most one instance of a job family may run at a time, across every
    worker thread and every process pointed at the same store. Locks are
    rows keyed by name with an expiry; an expired row is reaped on the next
    acquire attempt, so a crashed holder blocks its family for at most one
    TTL. Acquisition never waits: it inserts or it doesn't.

Tags:
    shopspine, scheduling, locks, TTL, concurrency

Doc-Types:
    api-reference, architecture-diagram


    Lock flow::

        try_acquire("job-lock:orders.fetch_new", ttl=3600)
            DELETE expired row for name
            INSERT OR IGNORE (name, token, holder, acquired_at, expires_at)
            rowcount == 1 ──► LockToken          rowcount == 0 ──► None

        release(token)
            DELETE WHERE name = token.name AND token = token.token

    Each acquisition gets a fresh token, so two guards in the same process
    contend exactly like two processes do, and a holder whose lock expired
    and was taken over cannot delete the new holder's row.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import uuid4

from shopspine.core.dialect import Dialect, SQLiteDialect
from shopspine.core.errors import LockError
from shopspine.core.logging import get_logger
from shopspine.core.protocols import Connection
from shopspine.core.timestamps import from_db, to_db, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class LockToken:
    """Proof of holding ``name`` until ``expires_at``."""

    name: str
    token: str
    holder: str
    expires_at: datetime


class LockManager:
    """Database-backed :class:`~shopspine.core.protocols.LockProvider`.

    Example:
        >>> locks = LockManager(conn, instance_id="worker-1")
        >>> token = locks.try_acquire("job-lock:orders.fetch_new", ttl_seconds=3600)
        >>> if token is not None:
        ...     try:
        ...         run()
        ...     finally:
        ...         locks.release(token)
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize lock manager.

        Args:
            conn: Database connection
            dialect: SQL dialect for portable queries
            instance_id: Holder identifier recorded with each lock
            clock: Source of "now" (tests inject a fixed clock)
        """
        self.conn = conn
        self.dialect = dialect or SQLiteDialect()
        self.instance_id = instance_id or str(uuid4())
        self._clock = clock

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def try_acquire(self, name: str, ttl_seconds: int) -> LockToken | None:
        """Acquire ``name`` or return None immediately if someone holds it.

        Raises:
            LockError: the store itself failed (contention never raises)
        """
        now = self._clock()
        expires = now + timedelta(seconds=ttl_seconds)
        token = LockToken(name=name, token=uuid4().hex, holder=self.instance_id, expires_at=expires)

        try:
            self.conn.execute(
                f"DELETE FROM job_locks WHERE name = {self._ph()} AND expires_at < {self._ph()}",
                (name, to_db(now)),
            )
            cursor = self.conn.execute(
                self.dialect.insert_or_ignore(
                    "job_locks", ["name", "token", "holder", "acquired_at", "expires_at"]
                ),
                (name, token.token, token.holder, to_db(now), to_db(expires)),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise LockError(f"Lock acquire failed for {name}", cause=e).with_context(
                lock_name=name
            ) from e

        if cursor.rowcount > 0:
            logger.debug("lock_acquired", lock_name=name, holder=self.instance_id, ttl_seconds=ttl_seconds)
            return token

        logger.debug("lock_held_elsewhere", lock_name=name)
        return None

    def release(self, token: LockToken) -> bool:
        """Release a held lock. False when it had already expired or been taken over."""
        try:
            cursor = self.conn.execute(
                f"DELETE FROM job_locks WHERE name = {self._ph()} AND token = {self._ph()}",
                (token.name, token.token),
            )
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            logger.error("lock_release_failed", lock_name=token.name, error=str(e))
            return False

        released = cursor.rowcount > 0
        if released:
            logger.debug("lock_released", lock_name=token.name)
        else:
            logger.warning("lock_release_missed", lock_name=token.name, holder=token.holder)
        return released

    def is_locked(self, name: str) -> bool:
        cursor = self.conn.execute(
            f"SELECT 1 FROM job_locks WHERE name = {self._ph()} AND expires_at >= {self._ph()}",
            (name, to_db(self._clock())),
        )
        return cursor.fetchone() is not None

    def get_holder(self, name: str) -> str | None:
        cursor = self.conn.execute(
            f"SELECT holder FROM job_locks WHERE name = {self._ph()} AND expires_at >= {self._ph()}",
            (name, to_db(self._clock())),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def cleanup_expired(self) -> int:
        """Delete expired lock rows; returns how many were removed."""
        cursor = self.conn.execute(
            f"DELETE FROM job_locks WHERE expires_at < {self._ph()}",
            (to_db(self._clock()),),
        )
        self.conn.commit()
        count = cursor.rowcount
        if count:
            logger.info("expired_locks_cleaned", count=count)
        return count

    def list_active(self) -> list[dict[str, Any]]:
        cursor = self.conn.execute(
            f"""
            SELECT name, holder, acquired_at, expires_at FROM job_locks
            WHERE expires_at >= {self._ph()}
            ORDER BY name
            """,
            (to_db(self._clock()),),
        )
        return [
            {
                "name": row[0],
                "holder": row[1],
                "acquired_at": from_db(row[2]),
                "expires_at": from_db(row[3]),
            }
            for row in cursor.fetchall()
        ]

    def force_release(self, name: str) -> bool:
        """Operator override: drop ``name`` whoever holds it."""
        cursor = self.conn.execute(f"DELETE FROM job_locks WHERE name = {self._ph()}", (name,))
        self.conn.commit()
        released = cursor.rowcount > 0
        if released:
            logger.warning("lock_force_released", lock_name=name)
        return released


class MemoryLockProvider:
    """In-process :class:`~shopspine.core.protocols.LockProvider` for tests and single-process runs."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._mutex = threading.Lock()
        self._held: dict[str, LockToken] = {}

    def try_acquire(self, name: str, ttl_seconds: int) -> LockToken | None:
        now = self._clock()
        with self._mutex:
            current = self._held.get(name)
            if current is not None and current.expires_at >= now:
                return None
            token = LockToken(
                name=name,
                token=uuid4().hex,
                holder="memory",
                expires_at=now + timedelta(seconds=ttl_seconds),
            )
            self._held[name] = token
            return token

    def release(self, token: LockToken) -> bool:
        with self._mutex:
            current = self._held.get(token.name)
            if current is None or current.token != token.token:
                return False
            del self._held[token.name]
            return True

    def is_locked(self, name: str) -> bool:
        with self._mutex:
            current = self._held.get(name)
            return current is not None and current.expires_at >= self._clock()


__all__ = ["LockToken", "LockManager", "MemoryLockProvider"]
