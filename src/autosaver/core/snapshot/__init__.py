"""Change-detection fingerprints."""

from __future__ import annotations

from .comparator import Snapshot, SnapshotComparator, default_comparator, fingerprint

__all__ = ["Snapshot", "SnapshotComparator", "default_comparator", "fingerprint"]
