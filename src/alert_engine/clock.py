"""Alert Management Engine - Clock & Timers.

The engine never reads the wall clock or starts threads directly. It asks
a Clock for the current time and for single-shot timers, so production
code runs on SystemClock while tests drive a VirtualClock forward.
"""

import heapq
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """A cancellable single-shot timer."""

    def __init__(self, when: datetime):
        self.when = when
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        self._cancelled = True


class Clock(ABC):
    """Time source and timer factory."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` once after ``delay_seconds``."""


# ── System Clock ─────────────────────────────────────────────────────


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, when: datetime, timer: threading.Timer):
        super().__init__(when)
        self._timer = timer

    def cancel(self) -> None:
        super().cancel()
        self._timer.cancel()


class SystemClock(Clock):
    """Wall clock backed by daemon ``threading.Timer`` threads."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        delay_seconds = max(0.0, delay_seconds)
        timer = threading.Timer(delay_seconds, callback, args=args)
        timer.daemon = True
        handle = _ThreadTimerHandle(self.now() + timedelta(seconds=delay_seconds), timer)
        timer.start()
        return handle


# ── Virtual Clock ────────────────────────────────────────────────────


class _VirtualTimerHandle(TimerHandle):
    def __init__(self, when: datetime, callback: Callable[..., Any], args: Tuple[Any, ...]):
        super().__init__(when)
        self.callback = callback
        self.args = args


class VirtualClock(Clock):
    """Deterministic clock for tests and replays.

    Time only moves when ``advance`` is called. Due timers fire in order
    of their due time (ties in scheduling order), on the calling thread,
    and timers armed by a firing callback fire within the same advance
    if they fall due before its target.

    Example:
        clock = VirtualClock()
        clock.call_later(300, notify)
        clock.advance(minutes=5)  # notify() runs here
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        # Heap of (when, counter, handle); counter keeps ordering stable
        self._queue: List[Tuple[datetime, int, _VirtualTimerHandle]] = []
        self._counter = 0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def call_later(self, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        with self._lock:
            when = self._now + timedelta(seconds=max(0.0, delay_seconds))
            handle = _VirtualTimerHandle(when, callback, args)
            self._counter += 1
            heapq.heappush(self._queue, (when, self._counter, handle))
            return handle

    @property
    def pending_count(self) -> int:
        """Number of armed, uncancelled timers."""
        with self._lock:
            return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float = 0.0, minutes: float = 0.0, hours: float = 0.0) -> int:
        """Move time forward, firing every timer that falls due.

        Returns:
            Number of callbacks that ran.
        """
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours)
        if delta < timedelta(0):
            raise ValueError("VirtualClock cannot move backwards")

        with self._lock:
            target = self._now + delta

        fired = 0
        while True:
            with self._lock:
                handle = self._pop_due(target)
                if handle is None:
                    self._now = target
                    return fired
                self._now = max(self._now, handle.when)
            # Callbacks run without the clock lock; they may arm new timers
            handle.callback(*handle.args)
            fired += 1

    def _pop_due(self, target: datetime) -> Optional[_VirtualTimerHandle]:
        while self._queue and self._queue[0][0] <= target:
            _, _, handle = heapq.heappop(self._queue)
            if not handle.cancelled:
                return handle
        return None
