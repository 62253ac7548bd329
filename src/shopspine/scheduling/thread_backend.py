"""Threading-based clock that drives periodic callbacks.

┌──────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                           │
│                                                                           │
│   start(callback, interval_seconds, align=True)                           │
│      │                                                                    │
│      ▼                                                                    │
│   ┌──────────────────────────────────────────────────────────────┐       │
│   │  Daemon Thread                                                │       │
│   │                                                               │       │
│   │  while not stop_event.wait(delay_to_next_boundary()):         │       │
│   │      tick_count += 1                                          │       │
│   │      last_tick = now()                                        │       │
│   │      callback()          exceptions logged, loop continues    │       │
│   └──────────────────────────────────────────────────────────────┘       │
│                                                                           │
│   stop()  →  stop_event.set(); thread.join(timeout)                       │
│                                                                           │
│  With ``align=True`` ticks land just after wall-clock multiples of the    │
│  interval (the top of each minute for a 60 s interval), so every tick     │
│  evaluates a distinct cron minute.                                        │
└──────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from shopspine.core.logging import get_logger
from shopspine.core.timestamps import utcnow

logger = get_logger(__name__)

# ticks fire slightly after the boundary so "now" is inside the new minute
_ALIGN_SLACK_SECONDS = 0.5


class ThreadSchedulerBackend:
    """Daemon-thread clock for single-process deployments.

    Example:
        >>> backend = ThreadSchedulerBackend(name="sweep")
        >>> backend.start(service.tick, interval_seconds=60)
        >>> backend.stop()
    """

    def __init__(self, name: str = "sweep") -> None:
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 60.0
        self._align = True
        self._started = False
        self._lock = threading.Lock()

    def _next_delay(self) -> float:
        if not self._align:
            return self._interval
        return self._interval - (time.time() % self._interval) + _ALIGN_SLACK_SECONDS

    def start(
        self,
        callback: Callable[[], Any],
        interval_seconds: float = 60.0,
        align: bool = True,
    ) -> None:
        """Start calling ``callback`` every ``interval_seconds`` in a daemon thread."""
        if self._started:
            logger.warning("scheduler_backend_already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._align = align
        self._stop_event.clear()

        def _loop() -> None:
            logger.info("scheduler_backend_started", backend=self.name, interval_seconds=interval_seconds)
            while not self._stop_event.wait(self._next_delay()):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = utcnow()
                try:
                    callback()
                except Exception:
                    logger.exception("scheduler_tick_failed", backend=self.name)
            logger.info("scheduler_backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"shopspine-{self.name}")
        self._thread.start()
        self._started = True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop, waiting up to ``timeout`` seconds for the current tick."""
        if not self._started:
            return
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("scheduler_thread_not_stopped", backend=self.name)
        self._started = False

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick


__all__ = ["ThreadSchedulerBackend"]
