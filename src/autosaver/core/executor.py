"""
SaveExecutor: single-flight persist calls with one coalesced follow-up.

The executor owns the only path to the external persist function. It
guarantees that:

- at most one persist call is in flight at a time;
- requests arriving while a call is in flight collapse into one queued
  follow-up (``SAVING_QUEUED``), never an unbounded queue;
- a snapshot that is already durable is never written again;
- a trailing timer never retries a snapshot whose last attempt failed.
  Only a new change (or teardown/flush) retries.

The executor does not pick *which* value a follow-up writes. When the
in-flight call settles with the queued marker set, it calls ``on_requeue``
and the scheduler re-arms its inactivity window; the follow-up then writes
whatever state is latest when that window closes.

All state lives in one :class:`ExecutorState` and is only touched while
holding the lock shared with the scheduler.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from autosaver.core.contracts.status import SaveDecision, SaveState, SaveTrigger
from autosaver.core.persist.launcher import PersistFn, PersistLauncher
from autosaver.core.result import Result, from_exception
from autosaver.core.settings import get_logger
from autosaver.core.snapshot.comparator import Snapshot
from autosaver.core.timing.clock import Clock
from autosaver.core.trace.events import EventKind, EventTrace

logger = get_logger("autosaver.executor")


def _short(snapshot: Snapshot | None) -> str | None:
    return snapshot.short() if snapshot is not None else None


@dataclass(slots=True)
class ExecutorState:
    """Mutable bookkeeping owned by one :class:`SaveExecutor`."""

    save_state: SaveState = SaveState.IDLE
    last_saved: Snapshot | None = None
    in_flight: Snapshot | None = None
    last_failed: Snapshot | None = None
    last_error: str | None = None
    last_saved_at: float | None = None
    calls: int = 0


class SaveExecutor:
    """
    Mediates every call to the external persist function.

    Parameters
    ----------
    persist : PersistFn
        ``persist(value)``; sync or async, fails by raising or returning ``Err``.
    launcher : PersistLauncher
        Runs the call in the runtime's execution context.
    clock : Clock
        Source of ``last_saved_at`` timestamps.
    saved : Snapshot | None
        Fingerprint of the state already durable at construction.
    on_requeue : Callable[[], None] | None
        Called (under the lock) when a call settles with a follow-up queued.
    lock : threading.RLock | None
        Lock shared with the owning scheduler.
    trace : EventTrace | None
        Optional event recorder.
    """

    def __init__(
        self,
        persist: PersistFn,
        launcher: PersistLauncher,
        clock: Clock,
        saved: Snapshot | None = None,
        *,
        on_requeue: Callable[[], None] | None = None,
        lock: threading.RLock | None = None,
        trace: EventTrace | None = None,
    ) -> None:
        self._persist = persist
        self._launcher = launcher
        self._clock = clock
        self._on_requeue = on_requeue
        self._lock = lock if lock is not None else threading.RLock()
        self._trace = trace
        self._state = ExecutorState(last_saved=saved)

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    @property
    def save_state(self) -> SaveState:
        return self._state.save_state

    @property
    def is_saving(self) -> bool:
        return self._state.save_state is not SaveState.IDLE

    @property
    def last_saved(self) -> Snapshot | None:
        """Fingerprint of the most recent state confirmed durable."""
        return self._state.last_saved

    @property
    def in_flight(self) -> Snapshot | None:
        """Fingerprint of the value the running persist call is writing."""
        return self._state.in_flight

    @property
    def last_saved_at(self) -> float | None:
        return self._state.last_saved_at

    @property
    def last_error(self) -> str | None:
        return self._state.last_error

    @property
    def calls(self) -> int:
        """Number of persist calls launched so far."""
        return self._state.calls

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def attempt_save(
        self,
        value: Any,
        snapshot: Snapshot,
        trigger: SaveTrigger = SaveTrigger.CHANGE,
    ) -> SaveDecision:
        """Persist ``value`` unless it is durable, in flight, or must wait.

        ``value`` is handed to persist as-is at launch time; callers must pass
        a fresh value per change and not mutate it afterwards.
        """
        with self._lock:
            st = self._state
            if st.save_state is not SaveState.IDLE:
                if snapshot == st.in_flight:
                    return self._skip(snapshot, trigger, "in flight")
                st.save_state = SaveState.SAVING_QUEUED
                self._record(
                    EventKind.SAVE_QUEUED, trigger=trigger.value, snapshot=_short(snapshot)
                )
                logger.debug("save requested while saving; follow-up queued (%s)", trigger.value)
                return SaveDecision.QUEUED

            if snapshot == st.last_saved:
                return self._skip(snapshot, trigger, "already saved")

            if trigger is SaveTrigger.TRAILING and snapshot == st.last_failed:
                return self._skip(snapshot, trigger, "last attempt failed")

            st.save_state = SaveState.SAVING
            st.in_flight = snapshot
            st.calls += 1
            self._record(EventKind.SAVE_STARTED, trigger=trigger.value, snapshot=_short(snapshot))
            logger.debug("persist #%d started (%s, %s)", st.calls, trigger.value, snapshot.short())
            try:
                self._launcher.launch(self._persist, value, self._settle)
            except Exception as exc:
                logger.warning("could not launch persist: %s", exc)
                self._settle(from_exception(exc))
            return SaveDecision.STARTED

    def _skip(self, snapshot: Snapshot, trigger: SaveTrigger, reason: str) -> SaveDecision:
        self._record(
            EventKind.SAVE_SKIPPED, trigger=trigger.value, snapshot=_short(snapshot), reason=reason
        )
        return SaveDecision.SKIPPED

    def _settle(self, outcome: Result[None, str]) -> None:
        with self._lock:
            st = self._state
            attempted = st.in_flight
            if outcome.is_ok():
                st.last_saved = attempted
                st.last_failed = None
                st.last_error = None
                st.last_saved_at = self._clock.now()
                self._record(EventKind.SAVE_SUCCEEDED, snapshot=_short(attempted))
                logger.info("autosave succeeded (%s)", _short(attempted))
            else:
                st.last_failed = attempted
                st.last_error = outcome.unwrap_err()
                self._record(EventKind.SAVE_FAILED, snapshot=_short(attempted), error=st.last_error)
                logger.warning("autosave failed: %s", st.last_error)

            requeue = st.save_state is SaveState.SAVING_QUEUED
            st.save_state = SaveState.IDLE
            st.in_flight = None
            if requeue:
                self._record(EventKind.REQUEUE)
                if self._on_requeue is not None:
                    self._on_requeue()

    def _record(self, kind: EventKind, **detail: Any) -> None:
        if self._trace is not None:
            self._trace.record(kind, self._clock.now(), **detail)


__all__ = ["ExecutorState", "SaveExecutor"]
