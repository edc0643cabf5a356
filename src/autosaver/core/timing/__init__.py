"""Clocks and inactivity timers."""

from __future__ import annotations

from .burst_timer import (
    AsyncioBurstTimer,
    BurstTimer,
    ThreadingBurstTimer,
    VirtualBurstTimer,
)
from .clock import Clock, SystemClock, VirtualClock

__all__ = [
    "AsyncioBurstTimer",
    "BurstTimer",
    "Clock",
    "SystemClock",
    "ThreadingBurstTimer",
    "VirtualBurstTimer",
    "VirtualClock",
]
