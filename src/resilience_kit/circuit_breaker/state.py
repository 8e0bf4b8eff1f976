"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Stored breaker state, ``CLOSED`` or ``OPEN``.
        consecutive_failures: Failures counted since the last success or reset.
        opened_at: Monotonic timestamp when the breaker entered ``OPEN``.
    """

    name: str
    state: CircuitState
    consecutive_failures: int
    opened_at: float | None
