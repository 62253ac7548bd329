"""Work queues behind the ``enqueue(job_type, schedule_id)`` boundary.

ARCHITECTURE
────────────
::

    InlineWorkQueue(execute)
      └── .enqueue(job_type, id)  ─ runs execute() now, in the caller's thread

    ThreadPoolWorkQueue(execute, max_workers=4)
      ├── .enqueue(job_type, id)  ─ submit to ThreadPool, return immediately
      ├── .pending()              ─ futures not yet done
      └── .shutdown(wait=True)    ─ drain pool

``execute`` is normally :meth:`shopspine.scheduling.worker.JobWorker.execute`.
The inline queue is for tests and one-shot CLI runs; the thread pool is
the in-process production queue. A durable broker only needs an object
with the same ``enqueue`` method.

Tags:
    shopspine, execution, queue, thread-pool

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from shopspine.core.logging import get_logger

logger = get_logger(__name__)

Execute = Callable[[str, str], object]


class InlineWorkQueue:
    """Runs work synchronously; exceptions are logged, not raised to the sweep."""

    def __init__(self, execute: Execute):
        self._execute = execute
        self.enqueued: list[tuple[str, str]] = []

    def enqueue(self, job_type: str, schedule_id: str) -> None:
        self.enqueued.append((job_type, schedule_id))
        try:
            self._execute(job_type, schedule_id)
        except Exception:
            logger.exception("inline_job_failed", job_type=job_type, schedule_id=schedule_id)


class ThreadPoolWorkQueue:
    """ThreadPoolExecutor-backed fire-and-forget queue.

    Example:
        >>> queue = ThreadPoolWorkQueue(worker.execute, max_workers=4)
        >>> queue.enqueue("orders.fetch_new", schedule.id)
        >>> queue.shutdown(wait=True)
    """

    def __init__(self, execute: Execute, max_workers: int = 4):
        self._execute = execute
        self.pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="shopspine-worker")
        self._futures: set[Future] = set()
        self._lock = threading.Lock()

    def enqueue(self, job_type: str, schedule_id: str) -> None:
        future = self.pool.submit(self._execute, job_type, schedule_id)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(lambda f: self._done(f, job_type, schedule_id))

    def _done(self, future: Future, job_type: str, schedule_id: str) -> None:
        with self._lock:
            self._futures.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "queued_job_failed",
                job_type=job_type,
                schedule_id=schedule_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def pending(self) -> int:
        with self._lock:
            return sum(1 for f in self._futures if not f.done())

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown thread pool, optionally waiting for queued work."""
        self.pool.shutdown(wait=wait)

    def __enter__(self) -> ThreadPoolWorkQueue:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)


__all__ = ["InlineWorkQueue", "ThreadPoolWorkQueue"]
