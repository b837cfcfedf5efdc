"""
orderflow/errors.py

Error taxonomy and result type of the fulfillment engine.

Rules:
- Service internals raise OrderflowError subclasses.
- Public service entry points never raise them past their boundary; they return
  an OperationResult so the request handlers can map errors to responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class OrderflowError(Exception):
    """Base class for engine errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OrderflowError):
    """Referenced entity is missing or not visible to the caller."""

    code = "not_found"


class InvalidStateError(OrderflowError):
    """The requested change violates a precondition of the current state."""

    code = "invalid_state"


class PersistenceError(OrderflowError):
    """The durable store failed; nothing was committed."""

    code = "persistence"


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Success payload or typed error."""

    value: Optional[T] = None
    error: Optional[OrderflowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: OrderflowError) -> "OperationResult[Any]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or re-raise the error (handy in scripts and tests)."""
        if self.error is not None:
            raise self.error
        return self.value
