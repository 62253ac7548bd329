"""Job registry and dispatch router.

Manifesto:
    Adding a job type is a registration, not a new branch in a dispatch
    conditional. Handlers register against a job-type tag at import time;
    the router snapshots the registry into a static route table when it is
    built and hands schedule ids, never definitions, to the work queue.

ARCHITECTURE
────────────
::

    JobRegistry
      ├── .register(job_type, fn, kind=, lock_ttl_seconds=)
      ├── .get(job_type) / .find(job_type)
      ├── .has(job_type) / .list_handlers()
      └── .unregister(job_type) / .clear()

    @register_job("orders.fetch_new", kind="orders.fetch_new")
    def fetch_new_orders(ctx: JobContext) -> str: ...

    DispatchRouter(queue, registry)
      routes = {job_type: partial(queue.enqueue, job_type)}
      .dispatch(job_type, schedule_id) → bool
            unknown job_type → False (caller records "skipped")

    get_default_registry()     ─ module-level singleton
    reset_default_registry()   ─ clear for testing

Tags:
    shopspine, scheduling, registry, dispatch, routing

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any

from shopspine.core.errors import UnknownJobTypeError
from shopspine.core.logging import get_logger
from shopspine.core.protocols import WorkQueue
from shopspine.scheduling.models import ScheduleDefinition

logger = get_logger(__name__)


@dataclass
class JobContext:
    """What a handler receives when its schedule executes.

    ``schedule`` is re-read from the store at execution time; ``options``
    are the schedule's options after catalog sanitizing.
    """

    schedule: ScheduleDefinition
    options: dict[str, Any]
    started_at: datetime
    logger: Any

    @property
    def schedule_id(self) -> str:
        return self.schedule.id

    @property
    def shop_id(self) -> int | None:
        return self.schedule.shop_id


JobFunction = Callable[[JobContext], "str | None"]


@dataclass(frozen=True)
class JobHandler:
    """A registered job type.

    ``kind`` is the job family used for the overlap lock; job types that
    must not run concurrently with each other share a kind.
    """

    job_type: str
    fn: JobFunction
    kind: str
    lock_ttl_seconds: int | None = None
    description: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


class JobRegistry:
    """Injectable job-type → handler registry.

    Example:
        >>> registry = JobRegistry()
        >>> @register_job("orders.fetch_new", registry=registry)
        ... def fetch_new(ctx):
        ...     return "Fetched 12 orders"
        >>> registry.get("orders.fetch_new").kind
        'orders.fetch_new'
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(
        self,
        job_type: str,
        fn: JobFunction,
        *,
        kind: str | None = None,
        lock_ttl_seconds: int | None = None,
        description: str | None = None,
        tags: dict[str, str] | None = None,
    ) -> JobHandler:
        if job_type in self._handlers:
            logger.warning("job_handler_replaced", job_type=job_type)
        handler = JobHandler(
            job_type=job_type,
            fn=fn,
            kind=kind or job_type,
            lock_ttl_seconds=lock_ttl_seconds,
            description=description,
            tags=dict(tags or {}),
        )
        self._handlers[job_type] = handler
        return handler

    def get(self, job_type: str) -> JobHandler:
        handler = self._handlers.get(job_type)
        if handler is None:
            raise UnknownJobTypeError(job_type)
        return handler

    def find(self, job_type: str) -> JobHandler | None:
        return self._handlers.get(job_type)

    def has(self, job_type: str) -> bool:
        return job_type in self._handlers

    def list_handlers(self) -> list[JobHandler]:
        return [self._handlers[k] for k in sorted(self._handlers)]

    def unregister(self, job_type: str) -> bool:
        return self._handlers.pop(job_type, None) is not None

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)


_default_registry: JobRegistry | None = None


def get_default_registry() -> JobRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = JobRegistry()
    return _default_registry


def reset_default_registry() -> None:
    global _default_registry
    _default_registry = None


def register_job(
    job_type: str,
    *,
    kind: str | None = None,
    lock_ttl_seconds: int | None = None,
    registry: JobRegistry | None = None,
    description: str | None = None,
) -> Callable[[JobFunction], JobFunction]:
    """Decorator registering a handler for ``job_type``."""

    def decorator(func: JobFunction) -> JobFunction:
        target = registry if registry is not None else get_default_registry()
        target.register(
            job_type,
            func,
            kind=kind,
            lock_ttl_seconds=lock_ttl_seconds,
            description=description or func.__doc__,
        )
        return func

    return decorator


class DispatchRouter:
    """Static job-type → enqueue table built from a registry snapshot."""

    def __init__(self, queue: WorkQueue, registry: JobRegistry | None = None):
        self.queue = queue
        self.registry = registry if registry is not None else get_default_registry()
        self._routes: dict[str, Callable[[str], None]] = {}
        self.rebuild()

    def rebuild(self) -> None:
        """Re-snapshot the registry (after late plugin registration)."""
        self._routes = {
            handler.job_type: partial(self.queue.enqueue, handler.job_type)
            for handler in self.registry.list_handlers()
        }

    def supports(self, job_type: str) -> bool:
        return job_type in self._routes

    @property
    def job_types(self) -> list[str]:
        return sorted(self._routes)

    def dispatch(self, job_type: str, schedule_id: str) -> bool:
        """Enqueue ``schedule_id`` for ``job_type``.

        Returns False for an unknown job type. Errors raised by the queue
        propagate to the caller.
        """
        route = self._routes.get(job_type)
        if route is None:
            return False
        route(schedule_id)
        return True


__all__ = [
    "JobContext",
    "JobFunction",
    "JobHandler",
    "JobRegistry",
    "get_default_registry",
    "reset_default_registry",
    "register_job",
    "DispatchRouter",
]
