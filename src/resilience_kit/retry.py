"""Bounded retry with caller supplied backoff, jitter and retry predicate.

Two variants share one contract:
  - ``retry`` blocks the calling thread between attempts and can be
    interrupted through a ``threading.Event``.
  - ``retry_async`` suspends on the event loop between attempts and can be
    interrupted through an ``asyncio.Event``.

Failures reach the predicate as tagged ``Failure`` records. The last failure
is reported with its original exception object, never wrapped.
"""

from __future__ import annotations

import asyncio
import random
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.retry import retry_base
from tenacity.wait import wait_base

from resilience_kit.errors import Failure, FailureKind, RetryCancelledError
from resilience_kit.logging import log_info, log_warning

T = TypeVar("T")

BackoffFn = Callable[[int], float]
RetryPredicate = Callable[[Failure], bool]

MIN_JITTER_SECONDS = 0.001

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and exponential backoff bounds."""

    attempts: int
    min_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")

    def backoff(self, attempt_number: int) -> float:
        """Return the base delay after failed attempt ``attempt_number``."""
        return min(self.min_seconds * 2 ** (attempt_number - 1), self.max_seconds)


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Outcome of one retry invocation.

    Attributes:
        succeeded: Whether an attempt returned a value.
        value: The returned value when ``succeeded``.
        last_failure: The last failed attempt when not ``succeeded``.
        attempts: Number of attempts actually made.
        cancelled: Whether a stop signal aborted the wait between attempts.
    """

    succeeded: bool
    value: T | None
    last_failure: Failure | None
    attempts: int
    cancelled: bool = False

    def unwrap(self) -> T:
        """Return ``value`` or raise the last failure's original exception."""
        if self.succeeded:
            return self.value  # type: ignore[return-value]
        if self.last_failure is None:
            raise RetryCancelledError("retry cancelled before any attempt failed")
        raise self.last_failure.error


def exponential_backoff(
    initial_seconds: float,
    *,
    multiplier: float = 2.0,
    max_seconds: float | None = None,
) -> BackoffFn:
    """Build ``initial * multiplier ** (attempt - 1)``, optionally capped."""
    if initial_seconds < 0:
        raise ValueError("initial_seconds must be >= 0")
    if multiplier < 1:
        raise ValueError("multiplier must be >= 1")

    def _backoff(attempt_number: int) -> float:
        delay = initial_seconds * multiplier ** (attempt_number - 1)
        if max_seconds is not None:
            return min(delay, max_seconds)
        return delay

    return _backoff


def constant_backoff(seconds: float) -> BackoffFn:
    """Build a backoff returning the same base delay for every attempt."""
    if seconds < 0:
        raise ValueError("seconds must be >= 0")
    return lambda _attempt_number: seconds


def jittered_delay(backoff: BackoffFn, attempt_number: int, rng: random.Random) -> float:
    """Return ``backoff(n)`` plus uniform jitter in ``[0, max(1ms, backoff(n) / 2)]``."""
    base = max(backoff(attempt_number), 0.0)
    return base + rng.uniform(0.0, max(MIN_JITTER_SECONDS, base / 2))


def retry_on_any(failure: Failure) -> bool:
    """Retry every failure, circuit-open rejections included."""
    return True


def retry_on_kinds(*kinds: FailureKind) -> RetryPredicate:
    """Build a predicate retrying only failures of the given kinds."""
    allowed = frozenset(kinds)

    def _predicate(failure: Failure) -> bool:
        return failure.kind in allowed

    return _predicate


def retry_unless_circuit_open(failure: Failure) -> bool:
    """Retry everything except rejections from an open circuit."""
    return failure.kind is not FailureKind.CIRCUIT_OPEN


class BackoffJitterWait(wait_base):
    """Tenacity wait strategy applying a backoff function plus jitter."""

    def __init__(self, backoff: BackoffFn, rng: random.Random) -> None:
        self._backoff = backoff
        self._rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return jittered_delay(self._backoff, retry_state.attempt_number, self._rng)


def build_failure_predicate(retry_on: RetryPredicate) -> retry_base:
    """Adapt a ``Failure`` predicate into a tenacity retry strategy."""

    def _should_retry(error: BaseException) -> bool:
        if not isinstance(error, Exception):
            return False
        return retry_on(Failure.from_exception(error))

    return retry_if_exception(_should_retry)


def build_interruptible_sleep(
    stop_event: asyncio.Event,
) -> Callable[[float], Awaitable[None]]:
    """Build an async sleep that raises when shutdown is requested."""

    async def _interruptible_sleep(delay: float) -> None:
        if stop_event.is_set():
            raise RetryCancelledError("retry wait interrupted by stop signal")

        bounded_delay = max(delay, 0.0)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=bounded_delay)
        except TimeoutError:
            return
        raise RetryCancelledError("retry wait interrupted by stop signal")

    return _interruptible_sleep


def build_blocking_sleep(stop_event: threading.Event) -> Callable[[float], None]:
    """Build a thread-blocking sleep that raises when shutdown is requested."""

    def _blocking_sleep(delay: float) -> None:
        if stop_event.wait(timeout=max(delay, 0.0)):
            raise RetryCancelledError("retry wait interrupted by stop signal")

    return _blocking_sleep


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = None if outcome is None else outcome.exception()
    log_warning(
        _logger,
        "retry_attempt_failed",
        attempt=retry_state.attempt_number,
        delay_seconds=round(retry_state.upcoming_sleep, 6),
        error_type=error.__class__.__name__ if error is not None else None,
        error=str(error) if error is not None else None,
    )


def build_backoff_retrying(
    *,
    retry: retry_base,
    max_attempts: int,
    backoff: BackoffFn,
    rng: random.Random,
    sleep: Callable[[float], None] | None = None,
) -> Retrying:
    """Build a blocking ``Retrying`` with backoff + jitter waits."""
    wait = BackoffJitterWait(backoff, rng)
    stop = stop_after_attempt(max_attempts)
    if sleep is None:
        return Retrying(
            retry=retry,
            wait=wait,
            stop=stop,
            before_sleep=_log_before_sleep,
            reraise=True,
        )
    return Retrying(
        retry=retry,
        wait=wait,
        stop=stop,
        sleep=sleep,
        before_sleep=_log_before_sleep,
        reraise=True,
    )


def build_async_backoff_retrying(
    *,
    retry: retry_base,
    max_attempts: int,
    backoff: BackoffFn,
    rng: random.Random,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with backoff + jitter waits."""
    wait = BackoffJitterWait(backoff, rng)
    stop = stop_after_attempt(max_attempts)
    if sleep is None:
        return AsyncRetrying(
            retry=retry,
            wait=wait,
            stop=stop,
            before_sleep=_log_before_sleep,
            reraise=True,
        )
    return AsyncRetrying(
        retry=retry,
        wait=wait,
        stop=stop,
        sleep=sleep,
        before_sleep=_log_before_sleep,
        reraise=True,
    )


class _AttemptTracker:
    """Attempt count and last failure observed by one retry invocation."""

    def __init__(self) -> None:
        self.attempts = 0
        self.last_failure: Failure | None = None

    def failed_result(self, error: Exception) -> RetryResult[T]:
        last = self.last_failure
        if isinstance(error, RetryCancelledError) and (
            last is None or last.error is not error
        ):
            log_info(_logger, "retry_cancelled", attempts=self.attempts)
            return RetryResult(
                succeeded=False,
                value=None,
                last_failure=last,
                attempts=self.attempts,
                cancelled=True,
            )
        if last is None or last.error is not error:
            last = Failure.from_exception(error)
        log_warning(
            _logger,
            "retry_gave_up",
            attempts=self.attempts,
            failure_kind=str(last.kind),
            error=last.message,
        )
        return RetryResult(
            succeeded=False,
            value=None,
            last_failure=last,
            attempts=self.attempts,
        )


def _validate_max_attempts(max_attempts: int) -> None:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")


def retry(
    action: Callable[[], T],
    *,
    max_attempts: int,
    backoff: BackoffFn,
    retry_on: RetryPredicate = retry_on_any,
    rng: random.Random | None = None,
    stop_event: threading.Event | None = None,
    sleep: Callable[[float], None] | None = None,
) -> RetryResult[T]:
    """Run ``action`` until it succeeds, is not retryable, or attempts run out.

    Args:
        action: Zero-argument callable to attempt.
        max_attempts: Upper bound on attempts, at least 1.
        backoff: Maps a failed attempt number to a base delay in seconds.
        retry_on: Decides whether a failure is worth another attempt.
        rng: Jitter source. A fresh ``random.Random`` when omitted.
        stop_event: Set it to abort the wait between attempts.
        sleep: Custom blocking sleep; overrides ``stop_event`` handling.

    Returns:
        A ``RetryResult`` describing the final outcome.
    """
    _validate_max_attempts(max_attempts)
    if sleep is None and stop_event is not None:
        sleep = build_blocking_sleep(stop_event)
    retrying = build_backoff_retrying(
        retry=build_failure_predicate(retry_on),
        max_attempts=max_attempts,
        backoff=backoff,
        rng=random.Random() if rng is None else rng,
        sleep=sleep,
    )
    tracker = _AttemptTracker()
    value: T | None = None
    try:
        for attempt in retrying:
            with attempt:
                tracker.attempts = attempt.retry_state.attempt_number
                try:
                    value = action()
                except Exception as exc:
                    tracker.last_failure = Failure.from_exception(exc)
                    raise
    except Exception as exc:
        return tracker.failed_result(exc)
    return RetryResult(
        succeeded=True,
        value=value,
        last_failure=None,
        attempts=tracker.attempts,
    )


async def retry_async(
    action: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    backoff: BackoffFn,
    retry_on: RetryPredicate = retry_on_any,
    rng: random.Random | None = None,
    stop_event: asyncio.Event | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> RetryResult[T]:
    """Async counterpart of ``retry``; waits suspend instead of blocking."""
    _validate_max_attempts(max_attempts)
    if sleep is None and stop_event is not None:
        sleep = build_interruptible_sleep(stop_event)
    retrying = build_async_backoff_retrying(
        retry=build_failure_predicate(retry_on),
        max_attempts=max_attempts,
        backoff=backoff,
        rng=random.Random() if rng is None else rng,
        sleep=sleep,
    )
    tracker = _AttemptTracker()
    value: T | None = None
    try:
        async for attempt in retrying:
            with attempt:
                tracker.attempts = attempt.retry_state.attempt_number
                try:
                    value = await action()
                except Exception as exc:
                    tracker.last_failure = Failure.from_exception(exc)
                    raise
    except Exception as exc:
        return tracker.failed_result(exc)
    return RetryResult(
        succeeded=True,
        value=value,
        last_failure=None,
        attempts=tracker.attempts,
    )
