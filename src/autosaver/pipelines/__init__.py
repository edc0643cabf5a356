"""Pipeline entry points for autosaver.

Currently exposed:

- :func:`run_scenario`: replay a scripted change timeline against a scheduler
  on simulated time, implemented in ``simulation.py``.
"""

from __future__ import annotations

from .simulation import SimulationResult, run_scenario

__all__ = ["SimulationResult", "run_scenario"]
