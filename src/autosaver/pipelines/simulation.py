"""
Scenario simulation: replay a change timeline on virtual time.

Flow Overview
-------------
1. Build a :class:`SimulatedRuntime` with the scenario's persist latency.
2. Create a scheduler whose persist function records every payload and fails
   on the call numbers listed in ``fail_calls``.
3. Walk the timeline: advance the virtual clock to each change and feed it to
   ``on_change``; tear down at ``teardown_at_ms`` if given.
4. Drain every remaining timer and persist completion, then collect the calls,
   the final status and the event trace.

Nothing sleeps: a scenario spanning minutes of edits runs instantly and
always yields the same result.
"""

from __future__ import annotations

from typing import Any, TypedDict

from autosaver.core.contracts.scenario import Scenario
from autosaver.core.contracts.status import SaveStatus
from autosaver.core.persist.launcher import PersistCall
from autosaver.core.runtime import SimulatedRuntime
from autosaver.core.scheduler import create
from autosaver.core.settings import get_logger
from autosaver.core.trace.events import EventTrace

logger = get_logger("autosaver.simulation")


class SimulatedPersistFailure(RuntimeError):
    """Raised by the simulated persist function on a scripted failure."""


class SimulationResult(TypedDict):
    """Structured payload returned by :func:`run_scenario`.

    Attributes
    ----------
    scenario:
        The validated scenario that was replayed.
    calls:
        Every persist call in order, with virtual start/finish times.
    status:
        Scheduler status after the run drained.
    trace:
        Full scheduler event trace.
    ended_at_ms:
        Virtual time when the last callback ran.
    """

    scenario: Scenario
    calls: list[PersistCall]
    status: SaveStatus
    trace: EventTrace
    ended_at_ms: float


def run_scenario(scenario: Scenario) -> SimulationResult:
    """Replay ``scenario`` and return what the scheduler did."""
    runtime = SimulatedRuntime(latency=scenario.latency_ms / 1000.0)
    trace = EventTrace()
    failing = set(scenario.fail_calls)
    made = 0

    def persist(value: Any) -> None:
        nonlocal made
        made += 1
        if made in failing:
            raise SimulatedPersistFailure(f"simulated failure on call {made}")

    scheduler = create(scenario.initial, persist, scenario.config, runtime=runtime, trace=trace)
    logger.debug("simulating %r with %d changes", scenario.name, len(scenario.changes))

    for change in scenario.changes:
        runtime.at_ms(change.at_ms)
        scheduler.on_change(change.value)

    if scenario.teardown_at_ms is not None:
        runtime.at_ms(scenario.teardown_at_ms)
        scheduler.teardown()

    runtime.settle()

    return {
        "scenario": scenario,
        "calls": list(runtime.launcher.history),
        "status": scheduler.status,
        "trace": trace,
        "ended_at_ms": runtime.clock.now() * 1000.0,
    }


__all__ = ["SimulatedPersistFailure", "SimulationResult", "run_scenario"]
