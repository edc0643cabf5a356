"""Scenario: a scripted change timeline replayed by ``autosaver simulate``.

Example file
------------
.. code-block:: json

    {
      "name": "in-flight coalescing",
      "config": {"idle_ms": 1000, "immediate_first": true},
      "initial": {"title": ""},
      "latency_ms": 2000,
      "changes": [
        {"at_ms": 0, "value": {"title": "A"}},
        {"at_ms": 100, "value": {"title": "B"}}
      ]
    }

Contract notes
--------------
- ``changes`` must be sorted by ``at_ms``; equal timestamps keep file order.
- ``fail_calls`` lists 1-based persist call numbers that fail.
- ``teardown_at_ms`` (optional) tears the scheduler down at that instant.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, Field, model_validator

from .config import SchedulerConfig

Millis = Annotated[float, Field(ge=0.0)]


class ScenarioChange(BaseModel):
    """One state value delivered to ``on_change`` at a virtual instant."""

    at_ms: Millis
    value: Any


class Scenario(BaseModel):
    """A complete simulated run."""

    name: str = "scenario"
    config: SchedulerConfig = Field(default_factory=SchedulerConfig)
    initial: Any = None
    latency_ms: Millis = 0.0
    fail_calls: list[Annotated[int, Field(ge=1)]] = Field(default_factory=list)
    changes: list[ScenarioChange] = Field(default_factory=list)
    teardown_at_ms: Millis | None = None

    @model_validator(mode="after")
    def _check_order(self) -> Scenario:
        stamps = [c.at_ms for c in self.changes]
        if stamps != sorted(stamps):
            raise ValueError("changes must be sorted by at_ms")
        if self.teardown_at_ms is not None and stamps and self.teardown_at_ms < stamps[-1]:
            raise ValueError("teardown_at_ms must not precede the last change")
        return self


__all__ = ["Scenario", "ScenarioChange"]
