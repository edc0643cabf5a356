"""Unit tests for clocks and burst timers.

The virtual clock is exercised in detail because every deterministic
scheduler test depends on it. The asyncio and threading timers get short,
real-time checks of the same restart/cancel semantics.
"""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from autosaver.core.timing.burst_timer import (
    AsyncioBurstTimer,
    ThreadingBurstTimer,
    VirtualBurstTimer,
)
from autosaver.core.timing.clock import VirtualClock


def test_virtual_clock_runs_callbacks_in_time_order() -> None:
    clock = VirtualClock()
    seen: list[str] = []
    clock.call_later(2.0, lambda: seen.append("late"))
    clock.call_later(1.0, lambda: seen.append("early"))
    clock.call_later(1.0, lambda: seen.append("early-2"))

    clock.advance(1.5)
    assert seen == ["early", "early-2"]
    assert clock.now() == 1.5

    clock.advance(1.0)
    assert seen == ["early", "early-2", "late"]


def test_virtual_clock_runs_callbacks_scheduled_while_advancing() -> None:
    clock = VirtualClock()
    seen: list[float] = []

    def chain() -> None:
        seen.append(clock.now())
        if len(seen) < 3:
            clock.call_later(1.0, chain)

    clock.call_later(1.0, chain)
    clock.advance(10.0)
    assert seen == [1.0, 2.0, 3.0]


def test_virtual_clock_cancel_and_idle() -> None:
    clock = VirtualClock()
    fired: list[int] = []
    handle = clock.call_later(1.0, lambda: fired.append(1))
    clock.call_later(5.0, lambda: fired.append(5))
    handle.cancel()
    assert clock.pending == 1

    clock.run_until_idle()
    assert fired == [5]
    assert clock.now() == 5.0

    with pytest.raises(ValueError):
        clock.advance_to(1.0)


def test_virtual_clock_detects_runaway_callbacks() -> None:
    clock = VirtualClock()

    def forever() -> None:
        clock.call_later(1.0, forever)

    clock.call_later(0.0, forever)
    with pytest.raises(RuntimeError):
        clock.run_until_idle(limit=50)


def test_virtual_timer_restarts_instead_of_stacking() -> None:
    """Re-arming moves the deadline; only the last arm fires, once."""
    clock = VirtualClock()
    timer = VirtualBurstTimer(clock)
    fired: list[float] = []

    timer.arm(1.0, lambda: fired.append(clock.now()))
    clock.advance(0.5)
    timer.arm(1.0, lambda: fired.append(clock.now()))
    assert timer.deadline == 1.5

    clock.advance_to(1.1)
    assert fired == []
    clock.advance_to(1.5)
    assert fired == [1.5]
    assert not timer.armed

    clock.advance(5.0)
    assert fired == [1.5]


def test_virtual_timer_cancel() -> None:
    clock = VirtualClock()
    timer = VirtualBurstTimer(clock)
    fired: list[int] = []
    timer.arm(1.0, lambda: fired.append(1))
    assert timer.armed
    timer.cancel()
    timer.cancel()
    clock.advance(2.0)
    assert fired == [] and not timer.armed


def test_threading_timer_fires_once_and_cancels() -> None:
    timer = ThreadingBurstTimer()
    done = threading.Event()
    timer.arm(0.02, done.set)
    assert done.wait(2.0)
    assert not timer.armed

    fired: list[int] = []
    timer.arm(0.05, lambda: fired.append(1))
    timer.cancel()
    time.sleep(0.15)
    assert fired == []


def test_threading_timer_rearm_drops_stale_deadline() -> None:
    timer = ThreadingBurstTimer()
    fired: list[str] = []
    done = threading.Event()
    timer.arm(0.05, lambda: fired.append("stale"))
    timer.arm(0.1, lambda: (fired.append("fresh"), done.set()))
    assert done.wait(2.0)
    time.sleep(0.05)
    assert fired == ["fresh"]


def test_asyncio_timer_restart_semantics() -> None:
    async def scenario() -> list[str]:
        timer = AsyncioBurstTimer()
        fired: list[str] = []
        timer.arm(0.05, lambda: fired.append("first"))
        await asyncio.sleep(0.01)
        timer.arm(0.05, lambda: fired.append("second"))
        assert timer.armed
        await asyncio.sleep(0.2)
        assert not timer.armed
        timer.arm(0.01, lambda: fired.append("cancelled"))
        timer.cancel()
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["second"]
