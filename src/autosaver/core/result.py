"""Lightweight, typed Result container for persist outcomes.

Motivation
----------
A persist function may report failure by raising or by returning an explicit
error. The executor needs one shape for both, so every outcome is normalized
into a minimal `Result[T, E]`:

- `Ok(value)` / `Err(error)` variants,
- introspection: `is_ok`, `is_err`, and `unwrap_err` for the failure message.

Example
-------
>>> from autosaver.core.result import ok, err, Result
>>> def persist(doc: dict) -> Result[None, str]:
...     return ok(None) if doc.get("title") else err("title is required")
>>> persist({}).unwrap_err()
'title is required'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, cast

T = TypeVar("T")
E = TypeVar("E")


class Result(Generic[T, E]):
    """Sum type representing either success (`Ok[T]`) or failure (`Err[E]`)."""

    # ----- Introspection -----------------------------------------------------
    def is_ok(self) -> bool:
        """Return ``True`` if this is an :class:`Ok` value."""
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` if this is an :class:`Err` value."""
        return isinstance(self, Err)

    def unwrap_err(self) -> E:
        """Return the error value if ``Err``, else raise."""
        if isinstance(self, Err):
            return cast(Err[T, E], self).error
        raise RuntimeError(f"Attempted to unwrap_err on Ok: {self!r}")


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Successful result wrapping a value of type ``T``."""

    value: T


@dataclass(frozen=True)
class Err(Result[T, E]):
    """Failed result wrapping an error payload of type ``E``."""

    error: E


def ok(value: T) -> Result[T, E]:
    """Construct :class:`Ok` with better type inference at call sites."""
    return Ok(value)


def err(error: E) -> Result[T, E]:
    """Construct :class:`Err` with better type inference at call sites."""
    return Err(error)


def failure_message(exc: BaseException) -> str:
    """Return a user-facing message for a persist exception.

    Exceptions without a message fall back to ``"Save failed"``.
    """
    text = str(exc).strip()
    return text or "Save failed"


def as_outcome(returned: object) -> Result[None, str]:
    """Normalize whatever a persist function returned into a ``Result``.

    ``None`` and any non-Result value count as success. An ``Err`` keeps its
    error rendered as a string.
    """
    if isinstance(returned, Err):
        message = str(returned.error).strip()
        return err(message or "Save failed")
    return ok(None)


def from_exception(exc: BaseException) -> Result[None, str]:
    """Wrap a raised persist exception as an ``Err``."""
    return err(failure_message(exc))
