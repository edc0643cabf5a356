"""
Scheduler event trace.

Every decision the scheduler makes (a change observed, a timer armed, a save
started, queued or skipped, a persist call settling) can be recorded into an
:class:`EventTrace`. The trace is in-memory and append-only; the CLI renders
it, and :class:`~autosaver.core.trace.storage.TraceWriter` persists it.

Design Notes
------------
- **Immutability**: each :class:`SchedulerEvent` is frozen once recorded.
- **Serialization**: ``detail`` only ever holds JSON primitives (snapshot
  digests are stored shortened, values are never stored), so a trace can be
  dumped without a custom encoder and without leaking document content.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Kinds of scheduler events."""

    CHANGE = "change"
    NOOP = "noop"
    TIMER_ARMED = "timer_armed"
    TIMER_FIRED = "timer_fired"
    SAVE_STARTED = "save_started"
    SAVE_QUEUED = "save_queued"
    SAVE_SKIPPED = "save_skipped"
    SAVE_SUCCEEDED = "save_succeeded"
    SAVE_FAILED = "save_failed"
    REQUEUE = "requeue"
    TEARDOWN = "teardown"


@dataclass(frozen=True, slots=True)
class SchedulerEvent:
    """
    Immutable record of one scheduler decision.

    Attributes
    ----------
    at : float
        Clock reading (seconds) when the event happened. Virtual time under
        simulation, epoch seconds otherwise.
    seq : int
        Position in the trace, starting at 1.
    kind : EventKind
        What happened.
    detail : dict[str, Any]
        JSON-safe extras, e.g. ``{"trigger": "trailing", "snapshot": "ab12..."}``.
    """

    at: float
    seq: int
    kind: EventKind
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Export to a JSON-serializable dict."""
        return {
            "at": self.at,
            "seq": self.seq,
            "kind": self.kind.value,
            "detail": dict(self.detail),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchedulerEvent:
        """Import from a dict produced by :meth:`to_dict`."""
        return cls(
            at=float(data["at"]),
            seq=int(data["seq"]),
            kind=EventKind(data["kind"]),
            detail=dict(data.get("detail", {})),
        )


class EventTrace:
    """Append-only, in-memory log of :class:`SchedulerEvent` records."""

    __slots__ = ("_events",)

    def __init__(self) -> None:
        self._events: list[SchedulerEvent] = []

    def record(self, kind: EventKind, at: float, **detail: Any) -> SchedulerEvent:
        """Append a new event and return it."""
        event = SchedulerEvent(at=at, seq=len(self._events) + 1, kind=kind, detail=detail)
        self._events.append(event)
        return event

    def events(self, kind: EventKind | None = None) -> tuple[SchedulerEvent, ...]:
        """Return recorded events, optionally filtered by ``kind``."""
        if kind is None:
            return tuple(self._events)
        return tuple(e for e in self._events if e.kind is kind)

    def count(self, kind: EventKind) -> int:
        return sum(1 for e in self._events if e.kind is kind)

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._events)


__all__ = ["EventKind", "EventTrace", "SchedulerEvent"]
