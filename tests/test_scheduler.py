"""
Deterministic tests for the Scheduler state machine.

Every test runs on a :class:`SimulatedRuntime`: a virtual clock drives both
the inactivity timer and persist latency, so timelines such as "change at
t=200ms, idle window of 1s" are exact. Times below are in milliseconds.
The timer-race tests at the end swap in a timer whose callbacks fire on demand.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from autosaver.core.contracts.config import SchedulerConfig
from autosaver.core.contracts.status import BurstState, SaveDecision, SaveState
from autosaver.core.errors import FingerprintError, SchedulerClosedError
from autosaver.core.persist.launcher import VirtualLauncher
from autosaver.core.runtime import Runtime, SimulatedRuntime
from autosaver.core.scheduler import Scheduler, create
from autosaver.core.timing.burst_timer import BurstTimer
from autosaver.core.timing.clock import VirtualClock
from autosaver.core.trace.events import EventKind, EventTrace

INITIAL = {"title": ""}
A = {"title": "A"}
B = {"title": "B"}
C = {"title": "C"}


def _setup(
    idle_ms: int = 1000,
    immediate_first: bool = True,
    disabled: bool = False,
    latency_ms: float = 0.0,
    persist: Any = None,
) -> tuple[Scheduler, SimulatedRuntime, EventTrace]:
    runtime = SimulatedRuntime(latency=latency_ms / 1000.0)
    trace = EventTrace()
    config = SchedulerConfig(idle_ms=idle_ms, immediate_first=immediate_first, disabled=disabled)
    scheduler = create(
        INITIAL,
        persist if persist is not None else (lambda value: None),
        config,
        runtime=runtime,
        trace=trace,
    )
    return scheduler, runtime, trace


# --------------------------------------------------------------------------- #
# Scenarios
# --------------------------------------------------------------------------- #


def test_scenario_a_immediate_then_trailing() -> None:
    """A at 0 saves at once; B at 200 resets the window; trailing B at 1200."""
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True)

    scheduler.on_change(A)
    assert rt.persisted == [A]

    rt.at_ms(200)
    scheduler.on_change(B)
    assert rt.persisted == [A]

    rt.at_ms(1199)
    assert rt.persisted == [A]
    rt.at_ms(1200)
    assert rt.persisted == [A, B]
    assert rt.launcher.history[1].started_at == pytest.approx(1.2)

    rt.settle()
    assert rt.persisted == [A, B]
    assert not scheduler.pending
    assert scheduler.burst_state is BurstState.IDLE


def test_scenario_b_trailing_only() -> None:
    """Without immediate-first the only call comes from the timer."""
    scheduler, rt, _ = _setup(idle_ms=500, immediate_first=False)

    scheduler.on_change(A)
    rt.at_ms(499)
    assert rt.persisted == []
    rt.at_ms(500)
    assert rt.persisted == [A]
    rt.settle()
    assert rt.persisted == [A]


def test_scenario_c_change_during_in_flight_save() -> None:
    """A saves for 2s; B arrives meanwhile and is written once A settles."""
    scheduler, rt, trace = _setup(idle_ms=1000, immediate_first=True, latency_ms=2000)

    scheduler.on_change(A)
    assert scheduler.is_saving

    rt.at_ms(100)
    scheduler.on_change(B)
    assert scheduler.save_state is SaveState.SAVING_QUEUED
    assert rt.persisted == [A]

    rt.at_ms(1999)
    assert rt.persisted == [A]
    rt.at_ms(2000)
    assert scheduler.save_state is SaveState.IDLE
    assert scheduler.burst_state is BurstState.ACTIVE, "requeue reopens the burst"
    assert trace.count(EventKind.REQUEUE) == 1

    rt.at_ms(2999)
    assert rt.persisted == [A]
    rt.at_ms(3000)
    assert rt.persisted == [A, B]

    rt.settle()
    first, second = rt.launcher.history
    assert first.finished_at == pytest.approx(2.0)
    assert second.started_at >= first.finished_at, "persist calls must never overlap"
    assert not scheduler.pending


def test_scenario_d_failure_is_not_retried_by_the_timer() -> None:
    """A failing save records the error and waits for the next real change."""

    def persist(value: Any) -> None:
        if value == A:
            raise ConnectionError("server unreachable")

    scheduler, rt, trace = _setup(idle_ms=1000, immediate_first=True, persist=persist)

    scheduler.on_change(A)
    rt.settle()

    assert rt.persisted == [A]
    assert scheduler.last_error == "server unreachable"
    assert scheduler.last_saved_at is None
    assert scheduler.pending, "LastSaved must still be the pre-A value"
    assert trace.count(EventKind.SAVE_SKIPPED) == 1

    # The next organic change retries naturally.
    scheduler.on_change(B)
    rt.settle()
    assert rt.persisted == [A, B]
    assert scheduler.last_error is None
    assert not scheduler.pending


# --------------------------------------------------------------------------- #
# Properties
# --------------------------------------------------------------------------- #


def test_duplicate_values_never_arm_or_save() -> None:
    scheduler, rt, trace = _setup()

    for _ in range(5):
        scheduler.on_change({"title": ""})
    rt.settle()
    assert rt.persisted == []
    assert trace.count(EventKind.TIMER_ARMED) == 0
    assert trace.count(EventKind.NOOP) == 5

    scheduler.on_change(A)
    scheduler.on_change(dict(A))
    scheduler.on_change({"title": "A"})
    assert trace.count(EventKind.TIMER_ARMED) == 1
    rt.settle()
    assert rt.persisted == [A]


@pytest.mark.parametrize("latency_ms", [0, 150, 900, 5000])  # type: ignore[misc]
def test_burst_coalesces_to_at_most_two_calls(latency_ms: int) -> None:
    """N changes spaced under idle_ms yield one immediate and one trailing save."""
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=latency_ms)
    values = [{"title": f"v{i}"} for i in range(20)]

    for i, value in enumerate(values):
        rt.at_ms(i * 300)
        scheduler.on_change(value)
    rt.settle()

    assert len(rt.persisted) == 2
    assert rt.persisted[0] == values[0]
    assert rt.persisted[-1] == values[-1]
    assert not scheduler.pending


def test_no_immediate_first_means_one_call_per_burst() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=False)

    for i in range(5):
        rt.at_ms(i * 500)
        scheduler.on_change({"title": f"first-{i}"})
    rt.at_ms(10_000)
    for i in range(3):
        rt.at_ms(10_000 + i * 100)
        scheduler.on_change({"title": f"second-{i}"})
    rt.settle()

    assert rt.persisted == [{"title": "first-4"}, {"title": "second-2"}]


def test_disabled_scheduler_never_persists() -> None:
    scheduler, rt, trace = _setup(disabled=True)

    for i in range(10):
        rt.at_ms(i * 100)
        scheduler.on_change({"title": str(i)})
    scheduler.teardown()
    rt.settle()

    assert rt.persisted == []
    assert len(trace.events(EventKind.TIMER_ARMED)) == 0
    assert scheduler.flush() is SaveDecision.SKIPPED


def test_follow_up_carries_latest_state_not_queued_state() -> None:
    """B queues the follow-up, but C is what gets written."""
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=2000)

    scheduler.on_change(A)
    rt.at_ms(100)
    scheduler.on_change(B)
    rt.at_ms(1500)
    scheduler.on_change(C)
    rt.settle()

    assert rt.persisted == [A, C]


def test_revert_to_saved_value_during_in_flight_save_is_written() -> None:
    """A is in flight when the user undoes back to the initial value."""
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=2000)

    scheduler.on_change(A)
    rt.at_ms(100)
    scheduler.on_change(dict(INITIAL))
    rt.settle()

    assert rt.persisted == [A, INITIAL]
    assert scheduler.pending is False
    assert scheduler.save_state is SaveState.IDLE
    assert scheduler.burst_state is BurstState.IDLE


def test_teardown_after_revert_during_in_flight_save_restores_saved_value() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=2000)

    scheduler.on_change(A)
    rt.at_ms(100)
    scheduler.on_change(dict(INITIAL))
    assert scheduler.pending, "A is about to overwrite the reverted value"
    scheduler.teardown()
    rt.settle()

    assert rt.persisted == [A, INITIAL]
    assert scheduler.pending is False


def test_none_values_are_ignored() -> None:
    scheduler, rt, trace = _setup()
    scheduler.on_change(None)
    rt.settle()
    assert rt.persisted == []
    assert len(trace) == 0


def test_initial_none_treats_first_value_as_change() -> None:
    runtime = SimulatedRuntime()
    scheduler = create(None, lambda v: None, SchedulerConfig(idle_ms=100), runtime=runtime)
    assert not scheduler.pending
    scheduler.on_change(A)
    runtime.settle()
    assert runtime.persisted == [A]


def test_unfingerprintable_value_fails_fast() -> None:
    scheduler, rt, _ = _setup()
    with pytest.raises(FingerprintError):
        scheduler.on_change({"cursor": object()})
    rt.settle()
    assert rt.persisted == []


# --------------------------------------------------------------------------- #
# Teardown and flush
# --------------------------------------------------------------------------- #


def test_teardown_flushes_unsaved_state_once() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=False)

    scheduler.on_change(A)
    rt.at_ms(300)
    scheduler.teardown()
    scheduler.teardown()
    assert rt.persisted == [A]

    rt.at_ms(5000)
    rt.settle()
    assert rt.persisted == [A], "timer must be cancelled on teardown"


def test_teardown_without_pending_changes_does_not_save() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True)
    scheduler.on_change(A)
    rt.settle()
    assert rt.persisted == [A]

    scheduler.teardown()
    rt.settle()
    assert rt.persisted == [A]


def test_teardown_during_in_flight_save_writes_latest_afterwards() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=2000)

    scheduler.on_change(A)
    rt.at_ms(500)
    scheduler.on_change(B)
    rt.at_ms(800)
    scheduler.teardown()
    assert rt.persisted == [A]

    rt.settle()
    assert rt.persisted == [A, B]
    assert rt.launcher.history[1].started_at == pytest.approx(2.0)


def test_teardown_swallows_final_save_failure() -> None:
    def persist(value: Any) -> None:
        raise OSError("gone")

    scheduler, rt, _ = _setup(immediate_first=False, persist=persist)
    scheduler.on_change(A)
    scheduler.teardown()
    rt.settle()

    assert rt.persisted == [A]
    assert scheduler.last_error == "gone"
    assert scheduler.closed


def test_on_change_after_teardown_raises() -> None:
    scheduler, _, _ = _setup()
    scheduler.teardown()
    with pytest.raises(SchedulerClosedError):
        scheduler.on_change(A)


def test_flush_saves_now_and_closes_burst() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=False)
    scheduler.on_change(A)
    assert scheduler.flush() is SaveDecision.STARTED
    assert rt.persisted == [A]
    assert scheduler.burst_state is BurstState.IDLE

    rt.settle()
    assert rt.persisted == [A]
    assert scheduler.flush() is SaveDecision.SKIPPED


def test_context_manager_tears_down() -> None:
    runtime = SimulatedRuntime()
    config = SchedulerConfig(immediate_first=False)
    with create(INITIAL, lambda v: None, config, runtime=runtime) as s:
        s.on_change(A)
    assert s.closed
    assert runtime.persisted == [A]


# --------------------------------------------------------------------------- #
# Status
# --------------------------------------------------------------------------- #


def test_status_projection_tracks_save_lifecycle() -> None:
    scheduler, rt, _ = _setup(idle_ms=1000, immediate_first=True, latency_ms=400)

    status = scheduler.status
    assert not status.is_saving and not status.pending
    assert status.last_saved_at is None and status.last_error is None

    rt.at_ms(1000)
    scheduler.on_change(A)
    status = scheduler.status
    assert status.is_saving and status.pending
    assert status.burst_state is BurstState.ACTIVE
    assert status.save_state is SaveState.SAVING
    assert status.describe() == "Saving…"

    rt.at_ms(1400)
    status = scheduler.status
    assert not status.is_saving and not status.pending
    assert status.last_saved_at == pytest.approx(1.4)


# --------------------------------------------------------------------------- #
# Timer races
# --------------------------------------------------------------------------- #


class _HeldTimer(BurstTimer):
    """Keeps every callback it was armed with, even after cancel/re-arm.

    Mimics a thread timer whose callback was already running when it was
    cancelled: the test decides when (and which) callbacks fire.
    """

    def __init__(self) -> None:
        self.callbacks: list[Callable[[], None]] = []

    def arm(self, delay_s: float, on_fire: Callable[[], None]) -> None:
        self.callbacks.append(on_fire)

    def cancel(self) -> None:
        pass

    @property
    def armed(self) -> bool:
        return bool(self.callbacks)


def test_fire_from_a_replaced_deadline_is_ignored() -> None:
    clock = VirtualClock()
    timer = _HeldTimer()
    launcher = VirtualLauncher(clock, 0.0)
    runtime = Runtime(clock=clock, timer_factory=lambda: timer, launcher=launcher)
    scheduler = create(
        INITIAL, lambda v: None, SchedulerConfig(immediate_first=False), runtime=runtime
    )

    scheduler.on_change(A)
    scheduler.on_change(B)
    stale, current = timer.callbacks

    stale()
    assert launcher.history == []
    assert scheduler.burst_state is BurstState.ACTIVE

    current()
    clock.run_until_idle()
    assert [c.value for c in launcher.history] == [B]
    assert scheduler.burst_state is BurstState.IDLE


def test_fire_after_flush_is_ignored() -> None:
    clock = VirtualClock()
    timer = _HeldTimer()
    launcher = VirtualLauncher(clock, 0.0)
    runtime = Runtime(clock=clock, timer_factory=lambda: timer, launcher=launcher)
    scheduler = create(
        INITIAL, lambda v: None, SchedulerConfig(immediate_first=False), runtime=runtime
    )

    scheduler.on_change(A)
    assert scheduler.flush() is SaveDecision.STARTED
    clock.run_until_idle()
    timer.callbacks[-1]()
    assert [c.value for c in launcher.history] == [A]
