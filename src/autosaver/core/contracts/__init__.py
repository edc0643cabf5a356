"""Pydantic contracts for scheduler configuration, status and scenarios."""

from __future__ import annotations

from .config import SchedulerConfig
from .scenario import Scenario, ScenarioChange
from .status import BurstState, SaveDecision, SaveState, SaveStatus, SaveTrigger

__all__ = [
    "BurstState",
    "SaveDecision",
    "SaveState",
    "SaveStatus",
    "SaveTrigger",
    "Scenario",
    "ScenarioChange",
    "SchedulerConfig",
]
