"""Thread-safe circuit breaker for sync and async callables.

Key behavior notes:
  - The breaker stores only ``CLOSED`` and ``OPEN``. ``HALF_OPEN`` names the
    trial call made once the cool-down has elapsed and is emitted to
    listeners for observability only.
  - A trial call resets the failure counter before running. If it fails, the
    circuit re-opens only once ``failure_threshold`` is reached again.
  - Excluded exceptions propagate without touching the failure counter.
"""

from resilience_kit.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from resilience_kit.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilience_kit.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilience_kit.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
]
