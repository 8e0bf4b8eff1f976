"""Observability hooks for circuit breakers."""

from __future__ import annotations

from typing import Protocol

import structlog

from resilience_kit.circuit_breaker.state import CircuitState
from resilience_kit.logging import StructuredLogger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN -> HALF_OPEN)`` is emitted once per trial call.
        The breaker never stores ``HALF_OPEN``.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener:
    """Breaker listener writing every event to a structured logger."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._logger: StructuredLogger = (
            structlog.get_logger(__name__) if logger is None else logger
        )

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        log_info(
            self._logger,
            "circuit_state_changed",
            breaker=name,
            old_state=str(old),
            new_state=str(new),
        )

    def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_call_rejected", breaker=name)

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        log_info(
            self._logger,
            "circuit_call_succeeded",
            breaker=name,
            elapsed_seconds=round(elapsed, 6),
        )

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        log_warning(
            self._logger,
            "circuit_call_failed",
            breaker=name,
            error_type=exc.__class__.__name__,
            error=str(exc),
            elapsed_seconds=round(elapsed, 6),
        )
