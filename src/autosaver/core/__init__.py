"""Core package for autosaver.

Subpackages
-----------
- ``contracts``: pydantic models for config, status and CLI scenarios
- ``snapshot``:  fingerprints for change detection
- ``timing``:    clocks and inactivity timers
- ``persist``:   adapters that run the external persist function
- ``trace``:     scheduler event recording
"""

from __future__ import annotations

__all__ = ["__doc__"]
