"""Core circuit breaker implementation."""

import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

import structlog

from resilience_kit.circuit_breaker.exceptions import CircuitOpenError
from resilience_kit.circuit_breaker.metrics import BreakerListener
from resilience_kit.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilience_kit.logging import log_exception, log_info

T = TypeVar("T")
P = ParamSpec("P")

_logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures required before opening.
        cool_down: Seconds to stay ``OPEN`` before allowing a trial call.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    cool_down: float = 30.0
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.cool_down < 0:
            raise ValueError("cool_down must be >= 0")


class CircuitBreaker:
    """Stateful guard around a dangerous operation.

    Breaker fields are only read or written while holding ``self._lock``;
    the guarded action itself runs outside the lock. A call arriving after
    the cool-down is a trial: the breaker resets to ``CLOSED`` before running
    it, and a failing trial re-opens the circuit through the normal
    threshold rule.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in errors, logs and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
            now_fn: Monotonic clock used for cool-down comparisons.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._now_fn = now_fn
        self._lock = threading.Lock()
        self._consecutive_failures = 0
        self._opened_at: float | None = None

    def _emit(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, hook)(self.name, *args)
            except Exception:
                log_exception(
                    _logger,
                    "breaker_listener_failed",
                    breaker=self.name,
                    hook=hook,
                    listener=listener.__class__.__qualname__,
                )

    def _snapshot_locked(self) -> BreakerSnapshot:
        return BreakerSnapshot(
            name=self.name,
            state=CircuitState.CLOSED if self._opened_at is None else CircuitState.OPEN,
            consecutive_failures=self._consecutive_failures,
            opened_at=self._opened_at,
        )

    def snapshot(self) -> BreakerSnapshot:
        """Return the current stored state without evaluating the cool-down."""
        with self._lock:
            return self._snapshot_locked()

    @property
    def state(self) -> CircuitState:
        return self.snapshot().state

    def reset(self) -> None:
        """Force the breaker back to a healthy ``CLOSED`` state."""
        with self._lock:
            was_open = self._opened_at is not None
            self._consecutive_failures = 0
            self._opened_at = None
        if was_open:
            self._emit("on_state_change", CircuitState.OPEN, CircuitState.CLOSED)

    def _admit(self) -> bool:
        """Decide whether a call may run; return whether it is a trial call."""
        with self._lock:
            if self._opened_at is None:
                return False
            elapsed = self._now_fn() - self._opened_at
            retry_after = max(self.config.cool_down - elapsed, 0.0)
            if retry_after <= 0:
                self._consecutive_failures = 0
                self._opened_at = None
        if retry_after > 0:
            self._emit("on_call_rejected")
            raise CircuitOpenError(self.name, retry_after=retry_after)
        self._emit("on_state_change", CircuitState.OPEN, CircuitState.HALF_OPEN)
        return True

    def _record_success(self, is_trial: bool, elapsed: float) -> None:
        with self._lock:
            # A late success must not clear a circuit other calls have opened.
            closed = self._opened_at is None
            if closed:
                self._consecutive_failures = 0
        if is_trial and closed:
            self._emit("on_state_change", CircuitState.HALF_OPEN, CircuitState.CLOSED)
            log_info(_logger, "circuit_closed", breaker=self.name)
        self._emit("on_call_succeeded", elapsed)

    def _record_failure(self, exc: Exception, is_trial: bool, elapsed: float) -> None:
        with self._lock:
            self._consecutive_failures += 1
            failures = self._consecutive_failures
            opened = (
                failures >= self.config.failure_threshold and self._opened_at is None
            )
            if opened:
                self._opened_at = self._now_fn()
        self._emit("on_call_failed", exc, elapsed)

        previous = CircuitState.HALF_OPEN if is_trial else CircuitState.CLOSED
        if opened:
            log_info(
                _logger,
                "circuit_opened",
                breaker=self.name,
                consecutive_failures=failures,
                cool_down_seconds=self.config.cool_down,
            )
            self._emit("on_state_change", previous, CircuitState.OPEN)
        elif is_trial:
            self._emit("on_state_change", previous, CircuitState.CLOSED)

    def execute(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke a callable under circuit breaker protection.

        Args:
            func: Dangerous callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        is_trial = self._admit()
        start = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            self._record_failure(exc, is_trial, max(time.monotonic() - start, 0.0))
            raise
        self._record_success(is_trial, max(time.monotonic() - start, 0.0))
        return result

    async def execute_async(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Same contract as ``execute``; only the admission and bookkeeping
        sections hold the breaker lock, never the awaited call.
        """
        is_trial = self._admit()
        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            self._record_failure(exc, is_trial, max(time.monotonic() - start, 0.0))
            raise
        self._record_success(is_trial, max(time.monotonic() - start, 0.0))
        return result

    def guard(self, action: Callable[[], T]) -> Callable[[], T]:
        """Return a zero-argument callable running ``action`` through ``execute``."""

        def _guarded() -> T:
            return self.execute(action)

        _guarded.__name__ = f"guarded_{getattr(action, '__name__', 'action')}"
        return _guarded

    def guard_async(
        self, action: Callable[[], Awaitable[T]]
    ) -> Callable[[], Awaitable[T]]:
        """Async counterpart of ``guard``."""

        async def _guarded() -> T:
            return await self.execute_async(action)

        _guarded.__name__ = f"guarded_{getattr(action, '__name__', 'action')}"
        return _guarded
