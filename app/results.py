"""Uniform outcome type returned by the data-access layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STORAGE = "storage"


UNAUTHENTICATED_MESSAGE = "User not authenticated"
NOT_FOUND_MESSAGE = "Application not found"


@dataclass(frozen=True)
class Failure:
    """Reason an operation did not succeed."""

    kind: ErrorKind
    message: str
    fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either ``data`` (when ``success``) or ``error``.

    Expected outcomes such as not-found or validation problems are
    represented here instead of being raised.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[Failure] = None

    @classmethod
    def ok(cls, data: T) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        fields: Optional[Dict[str, str]] = None,
    ) -> "Result[T]":
        return cls(success=False, error=Failure(kind=kind, message=message, fields=dict(fields or {})))

    @classmethod
    def unauthenticated(cls) -> "Result[T]":
        return cls.fail(ErrorKind.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE)

    @classmethod
    def not_found(cls) -> "Result[T]":
        return cls.fail(ErrorKind.NOT_FOUND, NOT_FOUND_MESSAGE)

    @classmethod
    def invalid(cls, fields: Dict[str, str], message: str = "Validation failed") -> "Result[T]":
        return cls.fail(ErrorKind.VALIDATION, message, fields)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    def map(self, func: Callable[[T], U]) -> "Result[U]":
        if not self.success:
            return Result(success=False, error=self.error)
        return Result.ok(func(self.data))  # type: ignore[arg-type]


__all__ = [
    "ErrorKind",
    "Failure",
    "NOT_FOUND_MESSAGE",
    "Result",
    "UNAUTHENTICATED_MESSAGE",
]
