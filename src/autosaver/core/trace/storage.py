"""Disk-backed writer for scheduler event traces.

- Default directory: `AUTOSAVER_TRACE_DIR` (via settings) or `artifacts/trace/`
- Filename pattern:  `YYYYmmddTHHMMSSffffffZ_{label}.json`
- Content:           `{"label": ..., "created_at": ..., "events": [...]}`

Usage
-----
>>> writer = TraceWriter()  # uses default dir
>>> path = writer.write(trace, label="scenario-a")
>>> events = load_trace(path)
"""

from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from pathlib import Path

from autosaver.core.settings import load_settings

from .events import EventTrace, SchedulerEvent


def _default_dir() -> Path:
    """Return the default base directory for trace artifacts."""
    root = load_settings().trace_dir
    return Path(root) if root else Path("artifacts") / "trace"


def _safe_label(label: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", label).strip("_") or "trace"


class TraceWriter:
    """Persist scheduler traces to disk as JSON files."""

    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir: Path = base_dir if base_dir is not None else _default_dir()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def write(self, trace: EventTrace, label: str = "trace") -> Path:
        """Write ``trace`` into the base directory and return the file path."""
        now = datetime.now(UTC)
        filename = f"{now.strftime('%Y%m%dT%H%M%S%fZ')}_{_safe_label(label)}.json"
        return self.write_to(trace, self.base_dir / filename, label=label, created_at=now)

    def write_to(
        self,
        trace: EventTrace,
        path: Path,
        label: str = "trace",
        created_at: datetime | None = None,
    ) -> Path:
        """Write ``trace`` to an explicit ``path``."""
        stamp = (created_at or datetime.now(UTC)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        payload = {
            "label": label,
            "created_at": stamp,
            "events": [e.to_dict() for e in trace.events()],
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.write("\n")
        return path


def load_trace(path: Path) -> tuple[str, tuple[SchedulerEvent, ...]]:
    """Read a trace file written by :class:`TraceWriter`; return ``(label, events)``."""
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    events = tuple(SchedulerEvent.from_dict(e) for e in data.get("events", []))
    return str(data.get("label", path.stem)), events


__all__ = ["TraceWriter", "load_trace"]
