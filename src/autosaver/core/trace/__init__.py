"""Scheduler event tracing and trace persistence."""

from __future__ import annotations

from .events import EventKind, EventTrace, SchedulerEvent
from .storage import TraceWriter, load_trace

__all__ = ["EventKind", "EventTrace", "SchedulerEvent", "TraceWriter", "load_trace"]
