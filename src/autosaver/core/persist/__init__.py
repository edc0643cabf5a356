"""Execution adapters for the external persist function."""

from __future__ import annotations

from .launcher import (
    AsyncioLauncher,
    PersistCall,
    PersistFn,
    PersistLauncher,
    ThreadLauncher,
    VirtualLauncher,
)

__all__ = [
    "AsyncioLauncher",
    "PersistCall",
    "PersistFn",
    "PersistLauncher",
    "ThreadLauncher",
    "VirtualLauncher",
]
