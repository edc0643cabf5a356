"""Scheduler state enums and the read-only status projection.

`SaveStatus` is what owning UI/controller code polls: a pydantic snapshot of
the executor and burst state at one instant. `describe()` renders the short
status label an editor shows next to its document.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BurstState(str, Enum):
    """Whether an inactivity window is currently open."""

    IDLE = "idle"
    ACTIVE = "active"


class SaveState(str, Enum):
    """Executor state: at most one save in flight plus one queued follow-up."""

    IDLE = "idle"
    SAVING = "saving"
    SAVING_QUEUED = "saving+queued"


class SaveTrigger(str, Enum):
    """What asked the executor for a save."""

    IMMEDIATE = "immediate"
    CHANGE = "change"
    TRAILING = "trailing"
    FLUSH = "flush"
    TEARDOWN = "teardown"


class SaveDecision(str, Enum):
    """What `SaveExecutor.attempt_save` did with a request."""

    SKIPPED = "skipped"
    QUEUED = "queued"
    STARTED = "started"


class SaveStatus(BaseModel):
    """Read-only projection of scheduler state, safe to poll at any time."""

    model_config = ConfigDict(frozen=True)

    is_saving: bool = False
    last_saved_at: float | None = Field(default=None, description="Epoch seconds of last success")
    last_error: str | None = None
    burst_state: BurstState = BurstState.IDLE
    save_state: SaveState = SaveState.IDLE
    pending: bool = Field(default=False, description="Latest seen state is not durable yet")
    closed: bool = False

    def describe(self) -> str:
        """Return a short human label such as ``"Last saved at: 14:02:11"``."""
        if self.is_saving:
            label = "Saving…"
        elif self.last_saved_at is not None:
            stamp = datetime.fromtimestamp(self.last_saved_at).strftime("%H:%M:%S")
            label = f"Last saved at: {stamp}"
        else:
            label = ""
        if self.last_error:
            label = f"{label} • {self.last_error}".strip()
        return label


__all__ = ["BurstState", "SaveDecision", "SaveState", "SaveStatus", "SaveTrigger"]
