"""Shared error types for resilience_kit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class FailureKind(StrEnum):
    """Classification attached to a failed attempt."""

    COMPUTATION = "computation"
    TRANSIENT = "transient"
    CIRCUIT_OPEN = "circuit_open"


class ResilienceError(Exception):
    """Base exception for errors raised by resilience_kit itself."""


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""

    failure_kind = FailureKind.TRANSIENT


class RetryCancelledError(ResilienceError):
    """Raised when a retry wait is interrupted by a stop signal."""


@dataclass(frozen=True)
class Failure:
    """Tagged failure record handed to retry predicates.

    Exceptions opt into a classification through a ``failure_kind`` class
    attribute; anything else is a ``COMPUTATION`` failure.

    Attributes:
        kind: Classification of the failure.
        error: The original exception, never wrapped.
    """

    kind: FailureKind
    error: BaseException

    @classmethod
    def from_exception(cls, error: BaseException) -> Failure:
        """Classify ``error`` into a tagged failure."""
        kind = getattr(error, "failure_kind", None)
        if not isinstance(kind, FailureKind):
            kind = FailureKind.COMPUTATION
        return cls(kind=kind, error=error)

    @property
    def message(self) -> str:
        return str(self.error)
