"""
Scheduler: turns a stream of state values into coalesced persist calls.

Wiring
------
Every value passes through :meth:`Scheduler.on_change`:

1. The value is fingerprinted; a value equal to the last one seen is a no-op
   (no timer, no save).
2. A real change opens a burst if none is open. With ``immediate_first`` the
   first change of a burst is saved right away.
3. A change arriving while a save is in flight marks the executor's single
   follow-up slot.
4. The inactivity timer is (re)armed for ``idle_ms``. When it fires, the
   latest value is saved (trailing save) and the burst closes.

When an in-flight save settles with the follow-up slot marked, the executor
calls back and the burst reopens with a fresh window, so edits made during
the call get one more batched save.

Threading
---------
One ``threading.RLock`` guards the whole ``on_change`` / timer / completion /
teardown section and is shared with the executor. Under the asyncio runtime
everything already runs on the loop; under the threaded runtime timers and
completions arrive on worker threads and the lock serializes them.
Each arm hands the timer a fresh token, so a fire that was already past the
timer's own cancel check when a newer change re-armed it does nothing.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import partial
from typing import Any

from autosaver.core.contracts.config import SchedulerConfig
from autosaver.core.contracts.status import (
    BurstState,
    SaveDecision,
    SaveState,
    SaveStatus,
    SaveTrigger,
)
from autosaver.core.errors import SchedulerClosedError
from autosaver.core.executor import SaveExecutor
from autosaver.core.persist.launcher import PersistFn
from autosaver.core.runtime import Runtime, asyncio_runtime
from autosaver.core.settings import get_logger
from autosaver.core.snapshot.comparator import Snapshot, SnapshotComparator, default_comparator
from autosaver.core.trace.events import EventKind, EventTrace

logger = get_logger("autosaver.scheduler")


@dataclass(slots=True)
class _SchedulerState:
    burst: BurstState
    last_seen: Snapshot | None
    latest: Any
    closed: bool = False
    arm_token: int = 0


class Scheduler:
    """
    Write-coalescing autosave scheduler bound to one stream of state values.

    Parameters
    ----------
    initial_value : Any
        State the caller starts from; assumed to be durable already. ``None``
        means "nothing loaded yet".
    persist : PersistFn
        External persist function (sync or async).
    config : SchedulerConfig | None
        Defaults to :meth:`SchedulerConfig.from_settings`.
    runtime : Runtime | None
        Execution context. Defaults to :func:`asyncio_runtime`, which requires
        a running event loop.
    comparator : SnapshotComparator | None
        Fingerprinting strategy. Defaults to the order-independent comparator.
    trace : EventTrace | None
        Optional recorder for every scheduler decision.
    """

    def __init__(
        self,
        initial_value: Any,
        persist: PersistFn,
        config: SchedulerConfig | None = None,
        *,
        runtime: Runtime | None = None,
        comparator: SnapshotComparator | None = None,
        trace: EventTrace | None = None,
    ) -> None:
        self._config = config if config is not None else SchedulerConfig.from_settings()
        self._runtime = runtime if runtime is not None else asyncio_runtime()
        self._comparator = comparator if comparator is not None else default_comparator
        self._trace = trace
        self._lock = threading.RLock()

        initial = None if initial_value is None else self._comparator.fingerprint(initial_value)
        self._state = _SchedulerState(
            burst=BurstState.IDLE, last_seen=initial, latest=initial_value
        )
        self._timer = self._runtime.new_timer()
        self._executor = SaveExecutor(
            persist,
            self._runtime.launcher,
            self._runtime.clock,
            saved=initial,
            on_requeue=self._on_requeue,
            lock=self._lock,
            trace=trace,
        )

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #

    def on_change(self, value: Any) -> None:
        """Observe a new state value.

        Raises
        ------
        SchedulerClosedError
            If called after :meth:`teardown`.
        FingerprintError
            If ``value`` cannot be canonically fingerprinted.
        """
        with self._lock:
            st = self._state
            if st.closed:
                raise SchedulerClosedError("on_change called after teardown")
            if self._config.disabled:
                logger.debug("scheduler disabled; change ignored")
                return
            if value is None:
                return

            snapshot = self._comparator.fingerprint(value)
            if snapshot == st.last_seen:
                self._record(EventKind.NOOP, snapshot=snapshot.short())
                return

            st.last_seen = snapshot
            st.latest = value
            self._record(EventKind.CHANGE, snapshot=snapshot.short())

            opening = st.burst is BurstState.IDLE
            st.burst = BurstState.ACTIVE
            if opening and self._config.immediate_first:
                self._executor.attempt_save(value, snapshot, SaveTrigger.IMMEDIATE)
            elif self._executor.is_saving:
                self._executor.attempt_save(value, snapshot, SaveTrigger.CHANGE)
            self._arm()

    def flush(self) -> SaveDecision:
        """Close the current burst and save the latest value now."""
        with self._lock:
            st = self._state
            if st.closed or self._config.disabled or st.last_seen is None:
                return SaveDecision.SKIPPED
            self._disarm()
            st.burst = BurstState.IDLE
            return self._executor.attempt_save(st.latest, st.last_seen, SaveTrigger.FLUSH)

    def teardown(self) -> None:
        """Cancel the timer and make one best-effort save of unsaved state.

        The final save is not awaited. Its failure is recorded on
        ``last_error`` and logged, never raised. Calling twice is harmless.
        """
        with self._lock:
            st = self._state
            if st.closed:
                return
            st.closed = True
            st.burst = BurstState.IDLE
            self._disarm()
            self._record(EventKind.TEARDOWN, pending=self.pending)
            if self._config.disabled or not self.pending or st.last_seen is None:
                return
            logger.debug("teardown with unsaved changes; final save requested")
            self._executor.attempt_save(st.latest, st.last_seen, SaveTrigger.TEARDOWN)

    def __enter__(self) -> Scheduler:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.teardown()

    # ------------------------------------------------------------------ #
    # Timer / executor callbacks
    # ------------------------------------------------------------------ #

    def _arm(self) -> None:
        # A fire that lost the race for the lock to a re-arm carries an old token.
        self._state.arm_token += 1
        on_fire = partial(self._on_timer_fire, self._state.arm_token)
        self._timer.arm(self._config.idle_seconds, on_fire)
        self._record(EventKind.TIMER_ARMED, delay_ms=self._config.idle_ms)

    def _disarm(self) -> None:
        self._state.arm_token += 1
        self._timer.cancel()

    def _on_timer_fire(self, token: int) -> None:
        with self._lock:
            st = self._state
            if st.closed or token != st.arm_token:
                return
            self._record(EventKind.TIMER_FIRED)
            st.burst = BurstState.IDLE
            if st.last_seen is not None:
                self._executor.attempt_save(st.latest, st.last_seen, SaveTrigger.TRAILING)

    def _on_requeue(self) -> None:
        # Runs under the lock, from the executor's completion path.
        st = self._state
        if st.closed:
            # The follow-up queued before or by teardown is the one last save.
            if st.last_seen is not None:
                self._executor.attempt_save(st.latest, st.last_seen, SaveTrigger.TEARDOWN)
            return
        st.burst = BurstState.ACTIVE
        self._arm()

    def _record(self, kind: EventKind, **detail: Any) -> None:
        if self._trace is not None:
            self._trace.record(kind, self._runtime.clock.now(), **detail)

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def is_saving(self) -> bool:
        return self._executor.is_saving

    @property
    def last_saved_at(self) -> float | None:
        return self._executor.last_saved_at

    @property
    def last_error(self) -> str | None:
        return self._executor.last_error

    @property
    def burst_state(self) -> BurstState:
        return self._state.burst

    @property
    def save_state(self) -> SaveState:
        return self._executor.save_state

    @property
    def pending(self) -> bool:
        """``True`` while the latest seen state is not confirmed durable.

        An in-flight write of some other value counts as pending too: once it
        lands, the stored state no longer matches the latest one.
        """
        last_seen = self._state.last_seen
        in_flight = self._executor.in_flight
        if in_flight is not None and in_flight != last_seen:
            return True
        return last_seen != self._executor.last_saved

    @property
    def closed(self) -> bool:
        return self._state.closed

    @property
    def status(self) -> SaveStatus:
        """Consistent snapshot of every status field."""
        with self._lock:
            return SaveStatus(
                is_saving=self.is_saving,
                last_saved_at=self.last_saved_at,
                last_error=self.last_error,
                burst_state=self.burst_state,
                save_state=self.save_state,
                pending=self.pending,
                closed=self.closed,
            )


def create(
    initial_value: Any,
    persist: PersistFn,
    config: SchedulerConfig | None = None,
    *,
    runtime: Runtime | None = None,
    comparator: SnapshotComparator | None = None,
    trace: EventTrace | None = None,
) -> Scheduler:
    """Build a :class:`Scheduler`; see its parameters."""
    return Scheduler(
        initial_value,
        persist,
        config,
        runtime=runtime,
        comparator=comparator,
        trace=trace,
    )


__all__ = ["Scheduler", "create"]
