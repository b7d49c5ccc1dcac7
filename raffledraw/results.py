"""Result-or-error values returned across the public boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .errors import DrawRejection, RaffleError

T = TypeVar("T")


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """Outcome of a public operation.

    Exactly one of ``data`` / ``error`` is meaningful: callers branch on
    ``error`` and render ``data`` otherwise. ``code`` lets a UI tell
    business-rule rejections apart from infrastructure failures.
    """

    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[DrawRejection] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "ActionResult[T]":
        return cls(data=data)

    @classmethod
    def failure(
        cls, error: str, code: Optional[DrawRejection] = None
    ) -> "ActionResult[T]":
        return cls(error=error, code=code)

    @classmethod
    def from_error(cls, exc: RaffleError) -> "ActionResult[T]":
        return cls(error=exc.message, code=exc.code)


__all__ = ["ActionResult"]
