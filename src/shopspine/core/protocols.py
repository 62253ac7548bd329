"""
Protocol definitions for the engine's collaborator boundaries.

The engine talks to four things it does not own: a database connection, an
asynchronous work queue, a shared lock store, and outbound notification
channels. Each is described here as a structural Protocol so any object of
the right shape plugs in (sqlite3 adapter or psycopg connection, thread pool
or broker, DB lock table or cache, Slack client or test double).

Architecture:
    ::

        protocols.py
        ├── Connection           — sync DB protocol (execute, fetch, commit)
        ├── WorkQueue            — enqueue(job_type, schedule_id), fire-and-forget
        ├── LockProvider         — try_acquire(name, ttl) -> token | None, release(token)
        └── NotificationChannel  — send(channel, notification_id, payload) -> bool

Guardrails:
    ❌ DON'T: Redefine these protocols in consuming modules
    ✅ DO: Import from shopspine.core.protocols

    ❌ DON'T: Block inside LockProvider.try_acquire
    ✅ DO: Return None immediately when the lock is held

Tags:
    protocol, connection, queue, lock, notification, shopspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal synchronous connection interface for database operations.

    Implemented natively by the sqlite3 adapter in
    :mod:`shopspine.core.connection` and by psycopg-style connections.
    ``execute`` returns a cursor-like object exposing ``rowcount``.
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


@runtime_checkable
class WorkQueue(Protocol):
    """
    Asynchronous work queue boundary.

    ``enqueue`` hands over the schedule id only; the handler re-reads the
    schedule when it executes. From the sweep's perspective enqueue is
    fire-and-forget: it returns once the work is accepted, not when it ran.
    """

    def enqueue(self, job_type: str, schedule_id: str) -> None:
        """Accept one unit of work for later execution."""
        ...


@runtime_checkable
class LockProvider(Protocol):
    """
    Name-keyed, TTL'd, non-blocking mutual exclusion.

    ``try_acquire`` returns an opaque token on success and ``None`` when
    the name is held by someone else. ``release`` takes the token, so a
    holder whose lock expired and was re-acquired by another process
    cannot release the new holder's lock.
    """

    def try_acquire(self, name: str, ttl_seconds: int) -> Any | None:
        """Acquire ``name`` for ``ttl_seconds`` or return None immediately."""
        ...

    def release(self, token: Any) -> bool:
        """Release a lock previously returned by ``try_acquire``."""
        ...


@runtime_checkable
class NotificationChannel(Protocol):
    """Outbound notification transport (Slack, e-mail, ...)."""

    def send(self, channel: str, notification_id: str, payload: dict[str, Any]) -> bool:
        """Deliver ``payload``; return True only when the channel confirmed it."""
        ...


__all__ = [
    "Connection",
    "WorkQueue",
    "LockProvider",
    "NotificationChannel",
]
