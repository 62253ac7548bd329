"""Overlap guard: run a callable only while holding its job-family lock.

The guard is composed explicitly around a unit of work instead of being
mixed into job classes. The lock name is derived from the job *kind*, not
the schedule id, so two schedules of the same family serialize.

Example::

    guard = OverlapGuard(LockManager(conn))
    ran = guard.with_lock(lock_name_for("orders.fetch_new"), fetch_orders)
    if not ran:
        ...  # another instance holds the family lock; nothing happened
"""

from __future__ import annotations

from typing import Any, Callable

from shopspine.core.logging import get_logger
from shopspine.core.protocols import LockProvider

logger = get_logger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 3600


def lock_name_for(job_kind: str) -> str:
    """Deterministic lock name for a job family."""
    return f"job-lock:{job_kind}"


class OverlapGuard:
    """Non-blocking acquire / execute / release around a callable."""

    def __init__(self, provider: LockProvider, default_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS):
        self.provider = provider
        self.default_ttl_seconds = default_ttl_seconds

    def with_lock(
        self,
        lock_name: str,
        fn: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        """Run ``fn`` under ``lock_name``.

        Returns False without calling ``fn`` when the lock is held. The lock
        is released on every exit path; exceptions from ``fn`` propagate.
        """
        ttl = ttl_seconds or self.default_ttl_seconds
        token = self.provider.try_acquire(lock_name, ttl)
        if token is None:
            logger.debug("overlap_guard_contended", lock_name=lock_name)
            return False

        try:
            fn()
        finally:
            self.provider.release(token)
        return True


__all__ = ["DEFAULT_LOCK_TTL_SECONDS", "lock_name_for", "OverlapGuard"]
