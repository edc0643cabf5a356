"""
Clocks used by the scheduler runtimes.

- :class:`SystemClock` reads wall time (``time.time``) and is used by the
  asyncio and thread runtimes for ``last_saved_at`` stamps.
- :class:`VirtualClock` is a deterministic, manually advanced clock with its
  own callback queue. It backs the simulated runtime used by the test-suite and
  by ``autosaver simulate``, so timelines like "change at t=200ms, idle window
  of 1s" replay exactly, without sleeping.
"""

from __future__ import annotations

import heapq
import itertools
import time
from collections.abc import Callable
from typing import Protocol

_EPSILON = 1e-9


class Clock(Protocol):
    """Anything that can report the current time in seconds."""

    def now(self) -> float: ...


class SystemClock:
    """Wall-clock time in epoch seconds."""

    def now(self) -> float:
        return time.time()


class VirtualHandle:
    """Cancellable reference to a callback queued on a :class:`VirtualClock`."""

    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualClock:
    """
    Manually advanced clock with a time-ordered callback queue.

    Callbacks due at the same instant run in the order they were scheduled.
    Callbacks scheduled *while* advancing run in the same call as long as they
    fall inside the advanced window.

    Parameters
    ----------
    start : float
        Initial reading of :meth:`now`, in seconds.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, VirtualHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualHandle:
        """Queue ``callback`` to run ``delay`` seconds from now."""
        handle = VirtualHandle(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        """Number of queued callbacks that have not been cancelled."""
        return sum(1 for _, _, h in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward by ``seconds``, running every callback that falls due."""
        self.advance_to(self._now + seconds)

    def advance_to(self, when: float) -> None:
        """Move time forward to the absolute reading ``when``.

        Deadlines within ``_EPSILON`` of ``when`` count as due, so float sums
        such as ``0.2 + 1.0`` land on the reading ``1.2``.
        """
        if when < self._now - _EPSILON:
            raise ValueError(f"cannot move a virtual clock backwards ({when} < {self._now})")
        while self._queue and self._queue[0][0] <= when + _EPSILON:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            handle.callback()
        self._now = max(self._now, when)

    def run_until_idle(self, limit: int = 10_000) -> None:
        """Run queued callbacks (advancing time) until nothing is left.

        ``limit`` bounds the number of rounds, guarding against a callback
        that keeps rescheduling itself forever.
        """
        for _ in range(limit):
            while self._queue and self._queue[0][2].cancelled:
                heapq.heappop(self._queue)
            if not self._queue:
                return
            self.advance_to(self._queue[0][0])
        raise RuntimeError(f"virtual clock still busy after {limit} rounds")


__all__ = ["Clock", "SystemClock", "VirtualClock", "VirtualHandle"]
