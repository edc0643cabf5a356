"""SchedulerConfig: construction-time knobs for one autosave scheduler.

Fields
------
idle_ms : int >= 0
    Inactivity window. A burst ends once this long passes with no change.
immediate_first : bool
    Persist the first change of every burst right away, before any idle wait.
disabled : bool
    Opt out entirely: changes are ignored, no timer is armed and teardown
    does not flush.

The model is frozen: configuration is fixed for the scheduler's lifetime.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from autosaver.core.settings import Settings, load_settings


class SchedulerConfig(BaseModel):
    """Validated, immutable scheduler configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    idle_ms: Annotated[int, Field(ge=0, description="Inactivity window in milliseconds")] = 5000
    immediate_first: bool = Field(
        default=True, description="Save the first edit of a burst at once"
    )
    disabled: bool = Field(default=False, description="Turn the scheduler into a no-op")

    @property
    def idle_seconds(self) -> float:
        """``idle_ms`` expressed in seconds, as the timers expect."""
        return self.idle_ms / 1000.0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> SchedulerConfig:
        """Build the default config from environment-driven settings."""
        s = source if source is not None else load_settings()
        return cls(idle_ms=s.idle_ms, immediate_first=s.immediate_first, disabled=s.disabled)


__all__ = ["SchedulerConfig"]
