"""
Snapshot fingerprints for change detection.

This module turns an arbitrary state value into a :class:`Snapshot`: a small,
immutable digest that answers "did it change since X?" without keeping a deep
copy of the value around.

Canonical form
--------------
Before hashing, the value is rewritten into a tagged tree of JSON primitives:

- mappings become sorted key/value pairs, so key order never counts as a change
  (unless the comparator is built with ``ordered=True``);
- sets and frozensets are sorted by the encoding of their members;
- lists and tuples keep their order (re-ordering a list *is* a change);
- pydantic models are dumped with ``model_dump(mode="json")`` and dataclasses
  with :func:`dataclasses.asdict`;
- every node carries a type tag, so ``1``, ``1.0``, ``True`` and ``"1"`` all
  fingerprint differently.

Anything else (open files, sockets, arbitrary objects) raises
:class:`FingerprintError` immediately rather than being compared by ``repr``.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from collections.abc import Mapping, Set
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from autosaver.core.errors import FingerprintError


@dataclass(frozen=True, slots=True)
class Snapshot:
    """
    Immutable fingerprint of a state value.

    Attributes
    ----------
    digest : str
        Hex SHA-256 of the canonical encoding. Two snapshots are equal iff the
        scheduler should treat the underlying values as unchanged.
    """

    digest: str

    def short(self) -> str:
        """Return the first 12 hex chars, handy for logs and traces."""
        return self.digest[:12]


def _encode(node: Any) -> str:
    return json.dumps(node, separators=(",", ":"), ensure_ascii=False)


class SnapshotComparator:
    """Produce and compare :class:`Snapshot` fingerprints.

    Parameters
    ----------
    ordered:
        When ``True``, mapping keys keep their insertion order, so a reordered
        dict counts as a change. Defaults to ``False`` (order-independent).
    """

    __slots__ = ("ordered",)

    def __init__(self, *, ordered: bool = False) -> None:
        self.ordered = ordered

    def fingerprint(self, value: Any) -> Snapshot:
        """Return the deterministic :class:`Snapshot` of ``value``."""
        tree = self._canonical(value, "$", set())
        digest = hashlib.sha256(_encode(tree).encode("utf-8")).hexdigest()
        return Snapshot(digest=digest)

    def equal(self, a: Snapshot | None, b: Snapshot | None) -> bool:
        """Return ``True`` when both fingerprints denote the same state."""
        return a == b

    # ------------------------------------------------------------------ #
    # Canonicalization
    # ------------------------------------------------------------------ #

    def _canonical(self, value: Any, path: str, active: set[int]) -> list[Any]:
        if value is None:
            return ["none"]
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return ["bool", value]
        if isinstance(value, Enum):
            return ["enum", type(value).__qualname__, self._canonical(value.value, path, active)]
        if isinstance(value, int):
            return ["int", value]
        if isinstance(value, float):
            return ["float", repr(value)]
        if isinstance(value, str):
            return ["str", value]
        if isinstance(value, bytes | bytearray):
            return ["bytes", bytes(value).hex()]
        if isinstance(value, Decimal):
            return ["decimal", str(value)]
        if isinstance(value, datetime | date | time):
            return ["time", value.isoformat()]
        if isinstance(value, UUID | PurePath):
            return [type(value).__name__.lower(), str(value)]

        marker = id(value)
        if marker in active:
            raise FingerprintError("cyclic reference", path=path)
        active.add(marker)
        try:
            return self._canonical_container(value, path, active)
        finally:
            active.discard(marker)

    def _canonical_container(self, value: Any, path: str, active: set[int]) -> list[Any]:
        if isinstance(value, BaseModel):
            return ["model", self._canonical(value.model_dump(mode="json"), path, active)]
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return ["model", self._canonical(dataclasses.asdict(value), path, active)]
        if isinstance(value, Mapping):
            pairs = [
                [
                    self._canonical(k, f"{path}.<key>", active),
                    self._canonical(v, f"{path}[{k!r}]", active),
                ]
                for k, v in value.items()
            ]
            if not self.ordered:
                pairs.sort(key=lambda pair: _encode(pair[0]))
            return ["map", pairs]
        if isinstance(value, Set):
            members = [self._canonical(v, f"{path}{{}}", active) for v in value]
            members.sort(key=_encode)
            return ["set", members]
        if isinstance(value, list | tuple):
            items = [self._canonical(v, f"{path}[{i}]", active) for i, v in enumerate(value)]
            return ["seq", items]
        raise FingerprintError(
            f"cannot fingerprint value of type {type(value).__name__}", path=path
        )


default_comparator = SnapshotComparator()


def fingerprint(value: Any) -> Snapshot:
    """Fingerprint ``value`` with the default (order-independent) comparator."""
    return default_comparator.fingerprint(value)


__all__ = ["Snapshot", "SnapshotComparator", "default_comparator", "fingerprint"]
