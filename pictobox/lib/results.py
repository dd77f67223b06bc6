"""Result type for best-effort side operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BestEffort(Generic[T]):
    """The outcome of an operation whose failure must never be fatal.

    ``warning`` is set when the operation fell back or did not complete;
    ``value`` always holds something the caller can use.
    """

    value: T
    warning: str | None = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None
