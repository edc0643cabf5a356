"""
Single-shot, restartable inactivity timers.

A :class:`BurstTimer` represents the inactivity window of one burst of edits.
Semantics shared by every implementation:

- at most one outstanding deadline per timer instance;
- ``arm`` while already armed cancels the previous deadline (restart, never
  stacking);
- ``on_fire`` runs exactly once per ``arm`` unless ``cancel`` comes first;
- ``cancel`` on an idle timer is a no-op.

Implementations
---------------
- :class:`AsyncioBurstTimer`: ``loop.call_later`` on an asyncio event loop.
- :class:`ThreadingBurstTimer`: ``threading.Timer``; ``on_fire`` runs on the
  timer thread, so the owner must serialize its own state.
- :class:`VirtualBurstTimer`: callbacks on a :class:`VirtualClock`.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

from .clock import VirtualClock, VirtualHandle

FireCallback = Callable[[], None]


class BurstTimer(ABC):
    """Cancellable deadline abstraction used by the scheduler."""

    @abstractmethod
    def arm(self, delay_s: float, on_fire: FireCallback) -> None:
        """(Re)start the deadline ``delay_s`` seconds from now."""

    @abstractmethod
    def cancel(self) -> None:
        """Drop the outstanding deadline, if any."""

    @property
    @abstractmethod
    def armed(self) -> bool:
        """``True`` while a deadline is outstanding."""


class AsyncioBurstTimer(BurstTimer):
    """Timer backed by ``loop.call_later``.

    Must be armed and cancelled from the loop's thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._handle: asyncio.TimerHandle | None = None

    def arm(self, delay_s: float, on_fire: FireCallback) -> None:
        self.cancel()
        self._handle = self._loop.call_later(max(0.0, delay_s), self._fire, on_fire)

    def _fire(self, on_fire: FireCallback) -> None:
        self._handle = None
        on_fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def armed(self) -> bool:
        return self._handle is not None


class ThreadingBurstTimer(BurstTimer):
    """Timer backed by a daemon ``threading.Timer``.

    ``threading.Timer.cancel`` cannot stop a callback that is already running,
    so every arm bumps a generation counter and stale timers check it before
    firing.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    def arm(self, delay_s: float, on_fire: FireCallback) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            timer = threading.Timer(max(0.0, delay_s), self._fire, args=(self._generation, on_fire))
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self, generation: int, on_fire: FireCallback) -> None:
        with self._lock:
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        on_fire()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._generation += 1

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None


class VirtualBurstTimer(BurstTimer):
    """Timer driven by a :class:`VirtualClock` (deterministic tests and simulation)."""

    def __init__(self, clock: VirtualClock) -> None:
        self._clock = clock
        self._handle: VirtualHandle | None = None

    def arm(self, delay_s: float, on_fire: FireCallback) -> None:
        self.cancel()
        handle: VirtualHandle | None = None

        def _fire() -> None:
            if self._handle is handle:
                self._handle = None
            on_fire()

        handle = self._clock.call_later(delay_s, _fire)
        self._handle = handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Virtual time at which the outstanding deadline fires."""
        return self._handle.when if self._handle is not None else None


__all__ = [
    "AsyncioBurstTimer",
    "BurstTimer",
    "FireCallback",
    "ThreadingBurstTimer",
    "VirtualBurstTimer",
]
