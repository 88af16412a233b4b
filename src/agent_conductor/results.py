"""Discriminated success/failure values returned by stores and state machines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T
    ok: bool = True


@dataclass(frozen=True, slots=True)
class Err:
    """Expected domain failure with a human-readable message."""

    error: str
    ok: bool = False

