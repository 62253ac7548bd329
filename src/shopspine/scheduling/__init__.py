"""Scheduling engine for shopspine.

┌──────────────────────────────────────────────────────────────────────────┐
│  SHOPSPINE SCHEDULER                                                      │
│                                                                           │
│   clock ──► SchedulerService.tick()                                       │
│               ├── ScheduleRepository.list_enabled()                       │
│               ├── evaluate()                 due-ness, tz + re-arm        │
│               ├── RunStateTracker.mark_queued()                           │
│               └── DispatchRouter.dispatch() ──► WorkQueue.enqueue()       │
│                                                      │                    │
│                                                      ▼                    │
│                                JobWorker.execute(job_type, schedule_id)   │
│                                  └── OverlapGuard("job-lock:{kind}")      │
│                                        └── tracker.track() → handler      │
│                                                                           │
│  Quick Start:                                                             │
│      engine = build_engine(conn, inline=True)                             │
│      engine.repository.create(get_catalog().new_schedule(                 │
│          "orders.fetch_new", shop_id=7))                                  │
│      engine.service.tick()                                                │
└──────────────────────────────────────────────────────────────────────────┘

Tags:
    shopspine, scheduling, cron, locks, dispatch

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from .catalog import JobCatalog, JobDefinition, get_catalog
from .engine import SchedulingEngine, build_engine
from .evaluator import DueDecision, evaluate, is_due, next_due, validate_cron, validate_timezone
from .guard import OverlapGuard, lock_name_for
from .locks import LockManager, LockToken, MemoryLockProvider
from .models import Frequency, RunStatus, ScheduleCreate, ScheduleDefinition, ScheduleUpdate
from .queue import InlineWorkQueue, ThreadPoolWorkQueue
from .repository import ScheduleRepository
from .router import (
    DispatchRouter,
    JobContext,
    JobHandler,
    JobRegistry,
    get_default_registry,
    register_job,
    reset_default_registry,
)
from .service import SchedulerHealth, SchedulerService, SchedulerStats, TickResult
from .state import Writer, can_transition
from .thread_backend import ThreadSchedulerBackend
from .tracker import RunStateTracker
from .worker import JobWorker

__all__ = [
    # Models
    "Frequency",
    "RunStatus",
    "ScheduleDefinition",
    "ScheduleCreate",
    "ScheduleUpdate",
    # Catalog
    "JobCatalog",
    "JobDefinition",
    "get_catalog",
    # Store
    "ScheduleRepository",
    # Evaluator
    "DueDecision",
    "evaluate",
    "is_due",
    "next_due",
    "validate_cron",
    "validate_timezone",
    # Locks
    "LockManager",
    "LockToken",
    "MemoryLockProvider",
    "OverlapGuard",
    "lock_name_for",
    # State
    "Writer",
    "can_transition",
    "RunStateTracker",
    # Routing & execution
    "JobContext",
    "JobHandler",
    "JobRegistry",
    "get_default_registry",
    "reset_default_registry",
    "register_job",
    "DispatchRouter",
    "InlineWorkQueue",
    "ThreadPoolWorkQueue",
    "JobWorker",
    # Service
    "SchedulerService",
    "SchedulerStats",
    "SchedulerHealth",
    "TickResult",
    "ThreadSchedulerBackend",
    # Wiring
    "SchedulingEngine",
    "build_engine",
]
