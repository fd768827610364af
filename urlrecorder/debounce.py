"""Debounced coalescing of rapid URL deliveries."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

IDLE = "idle"
PENDING = "pending"


class TimerScheduler:
    """Schedule callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def now() -> float:
        return time.monotonic()


class Debouncer:
    """Collect URLs and flush them once deliveries go quiet.

    State is Idle or Pending(deadline). Every ``push`` restarts the window;
    a flush swaps out the accumulated unique candidates, returns to Idle and
    hands them to ``sink`` exactly once, in first-arrival order.
    """

    def __init__(
        self,
        sink: Callable[[List[str]], None],
        delay: float = 0.5,
        scheduler=None,
    ) -> None:
        self._sink = sink
        self._delay = delay
        self._scheduler = scheduler or TimerScheduler()
        self._lock = threading.Lock()
        self._pending: Dict[str, None] = {}
        self._handle = None
        self._deadline: Optional[float] = None
        self._generation = 0

    @property
    def state(self) -> str:
        with self._lock:
            return PENDING if self._deadline is not None else IDLE

    @property
    def deadline(self) -> Optional[float]:
        with self._lock:
            return self._deadline

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def push(self, urls: Iterable[str]) -> None:
        urls = list(urls)
        if not urls:
            return
        with self._lock:
            for url in urls:
                self._pending.setdefault(url, None)
            if self._handle is not None:
                self._handle.cancel()
            self._generation += 1
            generation = self._generation
            self._deadline = self._scheduler.now() + self._delay
            self._handle = self._scheduler.call_later(
                self._delay, lambda: self._on_timer(generation)
            )

    def flush_now(self) -> int:
        """Drain synchronously; returns how many URLs were handed off."""
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            batch = self._take()
        return self._deliver(batch)

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            dropped = len(self._take())
        if dropped:
            logger.debug("Dropped %d pending URLs", dropped)

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            # a timer that lost a cancel race must not flush a newer window
            if generation != self._generation:
                return
            batch = self._take()
        self._deliver(batch)

    def _take(self) -> List[str]:
        batch = list(self._pending)
        self._pending = {}
        self._handle = None
        self._deadline = None
        self._generation += 1
        return batch

    def _deliver(self, batch: List[str]) -> int:
        if not batch:
            return 0
        logger.debug("Flushing %d debounced URLs", len(batch))
        try:
            self._sink(batch)
        except Exception:
            logger.exception("Debounced flush failed")
        return len(batch)
