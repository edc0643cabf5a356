"""Exception taxonomy for the autosave scheduler.

Persist failures are *not* raised through the scheduler; they are captured as
``Err`` outcomes and surfaced via ``last_error``. The exceptions below cover
caller contract violations, which fail fast.
"""

from __future__ import annotations


class AutosaverError(Exception):
    """Base class for all autosaver errors."""


class FingerprintError(AutosaverError, TypeError):
    """A state value cannot be encoded into a canonical, comparable form."""

    def __init__(self, message: str, *, path: str = "$") -> None:
        super().__init__(f"{message} (at {path})")
        self.path = path


class SchedulerClosedError(AutosaverError, RuntimeError):
    """``on_change`` was called after ``teardown``."""


__all__ = [
    "AutosaverError",
    "FingerprintError",
    "SchedulerClosedError",
]
