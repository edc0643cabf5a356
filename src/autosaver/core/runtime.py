"""
Runtime bundles: which clock, timer and persist launcher a scheduler uses.

The scheduler logic is identical everywhere; only the execution context
differs:

- :func:`asyncio_runtime`: everything on one asyncio event loop (the default
  when :func:`autosaver.create` runs inside a coroutine).
- :func:`threaded_runtime`: ``threading.Timer`` deadlines and a persist worker
  thread, for synchronous applications. ``Scheduler.teardown`` does not
  stop that thread; call :meth:`Runtime.close` after teardown.
- :class:`SimulatedRuntime`: a :class:`VirtualClock` drives both the timer and
  persist latency, so timelines replay deterministically.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from autosaver.core.persist.launcher import (
    AsyncioLauncher,
    LatencyFn,
    PersistLauncher,
    ThreadLauncher,
    VirtualLauncher,
)
from autosaver.core.timing.burst_timer import (
    AsyncioBurstTimer,
    BurstTimer,
    ThreadingBurstTimer,
    VirtualBurstTimer,
)
from autosaver.core.timing.clock import Clock, SystemClock, VirtualClock


@dataclass
class Runtime:
    """Execution context shared by a scheduler and its executor."""

    clock: Clock
    timer_factory: Callable[[], BurstTimer]
    launcher: PersistLauncher

    def new_timer(self) -> BurstTimer:
        return self.timer_factory()

    def close(self) -> None:
        """Release the launcher. Call once every scheduler using it is torn down.

        For :func:`threaded_runtime` this blocks until the final saves have
        settled, then stops the persist worker thread.
        """
        self.launcher.close()


def asyncio_runtime(loop: asyncio.AbstractEventLoop | None = None) -> Runtime:
    """Runtime bound to ``loop`` (default: the running loop)."""
    loop = loop if loop is not None else asyncio.get_running_loop()
    return Runtime(
        clock=SystemClock(),
        timer_factory=lambda: AsyncioBurstTimer(loop),
        launcher=AsyncioLauncher(loop),
    )


def threaded_runtime() -> Runtime:
    """Runtime for plain threaded code; callbacks arrive on worker threads."""
    return Runtime(
        clock=SystemClock(), timer_factory=ThreadingBurstTimer, launcher=ThreadLauncher()
    )


class SimulatedRuntime(Runtime):
    """
    Deterministic runtime on virtual time.

    Parameters
    ----------
    latency : float | Callable[[Any], float]
        Simulated persist latency in seconds.
    start : float
        Initial virtual clock reading.
    """

    clock: VirtualClock
    launcher: VirtualLauncher

    def __init__(self, latency: float | LatencyFn = 0.0, start: float = 0.0) -> None:
        clock = VirtualClock(start)
        super().__init__(
            clock=clock,
            timer_factory=lambda: VirtualBurstTimer(clock),
            launcher=VirtualLauncher(clock, latency),
        )

    def advance_ms(self, ms: float) -> None:
        """Move virtual time forward by ``ms`` milliseconds."""
        self.clock.advance(ms / 1000.0)

    def at_ms(self, ms: float) -> None:
        """Move virtual time forward to the absolute reading ``ms``."""
        self.clock.advance_to(ms / 1000.0)

    def settle(self) -> None:
        """Run every pending timer and persist completion."""
        self.clock.run_until_idle()

    @property
    def persisted(self) -> list[Any]:
        """Payloads handed to persist, in call order."""
        return [call.value for call in self.launcher.history]


__all__ = ["Runtime", "SimulatedRuntime", "asyncio_runtime", "threaded_runtime"]
