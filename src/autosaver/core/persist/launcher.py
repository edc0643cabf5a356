"""
Adapters that run the external persist function.

The executor never calls ``persist`` directly. It hands the call to a
:class:`PersistLauncher`, which runs it in the right execution context and
reports a normalized ``Result[None, str]`` back through ``on_done``.

Persist contract
----------------
``persist(value)`` may be synchronous or asynchronous. It succeeds by
returning ``None`` (or any non-``Err`` value, or ``Ok``). It fails by raising
or by returning ``Err(message)``. Failures never propagate out of the
launcher; they become ``Err`` outcomes.

Launchers
---------
- :class:`AsyncioLauncher`: one task per call on the event loop. Coroutine
  functions are awaited; plain functions run through ``asyncio.to_thread`` so
  a slow disk or network write does not stall the loop.
- :class:`ThreadLauncher`: a single worker thread; ``on_done`` runs on it.
  ``close()`` waits for outstanding calls and stops the thread.
- :class:`VirtualLauncher`: calls ``persist`` immediately and delivers the
  outcome after a simulated latency on a :class:`VirtualClock`. Keeps a
  history of calls for inspection.
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_all
from dataclasses import dataclass
from typing import Any

from autosaver.core.result import Result, as_outcome, from_exception
from autosaver.core.settings import get_logger
from autosaver.core.timing.clock import VirtualClock

logger = get_logger("autosaver.persist")

PersistFn = Callable[[Any], Any]
DoneCallback = Callable[[Result[None, str]], None]


class PersistLauncher(ABC):
    """Runs one persist call and reports its outcome."""

    @abstractmethod
    def launch(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        """Start ``persist(value)``; call ``on_done(outcome)`` when it settles."""

    def close(self) -> None:
        """Release whatever the launcher holds. Most launchers hold nothing."""


def _log_failure(exc: BaseException) -> None:
    logger.warning("persist raised %s: %s", type(exc).__name__, exc)


async def _await_value(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


class AsyncioLauncher(PersistLauncher):
    """Run persist calls as tasks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        # Strong references: the loop only keeps weak ones to running tasks.
        self._tasks: set[asyncio.Task[None]] = set()

    def launch(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        task = self._loop.create_task(self._run(persist, value, on_done))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        outcome: Result[None, str]
        try:
            if inspect.iscoroutinefunction(persist):
                returned = await persist(value)
            else:
                returned = await asyncio.to_thread(persist, value)
                if inspect.isawaitable(returned):
                    returned = await returned
        except Exception as exc:
            _log_failure(exc)
            outcome = from_exception(exc)
        else:
            outcome = as_outcome(returned)
        on_done(outcome)

    @property
    def in_flight(self) -> int:
        """Number of persist tasks that have not finished yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every launched persist task (including follow-ups) is done."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)


class ThreadLauncher(PersistLauncher):
    """Run persist calls on one dedicated worker thread."""

    def __init__(self) -> None:
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="autosaver-persist")
        self._lock = threading.Lock()
        self._futures: set[Future[None]] = set()

    def launch(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        future = self._pool.submit(self._run, persist, value, on_done)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future[None]) -> None:
        with self._lock:
            self._futures.discard(future)

    def _run(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        outcome: Result[None, str]
        try:
            returned = persist(value)
            if inspect.isawaitable(returned):
                returned = asyncio.run(_await_value(returned))
        except Exception as exc:
            _log_failure(exc)
            outcome = from_exception(exc)
        else:
            outcome = as_outcome(returned)
        try:
            on_done(outcome)
        except Exception:
            # Nothing upstream would see this from a pool thread.
            logger.exception("persist completion handler failed")

    def drain(self) -> None:
        """Block until every launched call (including follow-ups) has settled."""
        while True:
            with self._lock:
                pending = tuple(self._futures)
            if not pending:
                return
            wait_all(pending)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for the current call."""
        self._pool.shutdown(wait=wait)

    def close(self) -> None:
        """Let outstanding saves finish, then stop the worker thread."""
        self.drain()
        self.shutdown(wait=True)


@dataclass(slots=True)
class PersistCall:
    """One persist call observed by a :class:`VirtualLauncher`."""

    started_at: float
    value: Any
    finished_at: float | None = None
    outcome: Result[None, str] | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.is_ok()


LatencyFn = Callable[[Any], float]


class VirtualLauncher(PersistLauncher):
    """
    Simulated persist calls on a :class:`VirtualClock`.

    ``persist`` runs synchronously at launch time, so it sees the payload as of
    the call; its outcome is delivered ``latency`` seconds later.

    Parameters
    ----------
    clock : VirtualClock
        The simulated clock shared with the timer.
    latency : float | Callable[[Any], float]
        Seconds until the outcome is reported, fixed or per payload.
    """

    def __init__(self, clock: VirtualClock, latency: float | LatencyFn = 0.0) -> None:
        self._clock = clock
        self._latency = latency
        self.history: list[PersistCall] = []

    def launch(self, persist: PersistFn, value: Any, on_done: DoneCallback) -> None:
        call = PersistCall(started_at=self._clock.now(), value=value)
        self.history.append(call)
        outcome: Result[None, str]
        try:
            returned = persist(value)
            if inspect.isawaitable(returned):
                if inspect.iscoroutine(returned):
                    returned.close()
                raise TypeError("simulated persist functions must be synchronous")
        except Exception as exc:
            _log_failure(exc)
            outcome = from_exception(exc)
        else:
            outcome = as_outcome(returned)

        delay = self._latency(value) if callable(self._latency) else self._latency

        def _settle() -> None:
            call.finished_at = self._clock.now()
            call.outcome = outcome
            on_done(outcome)

        self._clock.call_later(delay, _settle)

    @property
    def in_flight(self) -> int:
        return sum(1 for call in self.history if call.outcome is None)


__all__ = [
    "AsyncioLauncher",
    "DoneCallback",
    "PersistCall",
    "PersistFn",
    "PersistLauncher",
    "ThreadLauncher",
    "VirtualLauncher",
]
