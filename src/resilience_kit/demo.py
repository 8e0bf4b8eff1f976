"""Walk-through of the memoization, retry and circuit breaker helpers.

``run_demo`` replays the classic scenarios and returns one line per step.
Clock and sleep are injectable so the whole walk-through can run on a fake
clock.
"""

from __future__ import annotations

import itertools
import random
import time
from collections.abc import Callable

import structlog

from resilience_kit.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from resilience_kit.errors import FailureKind, TransientError
from resilience_kit.logging import StructuredLogger, log_info
from resilience_kit.memoize import (
    memoize,
    memoize_with_ttl,
    memoized_fibonacci,
    memoized_token_count,
)
from resilience_kit.retry import BackoffFn, exponential_backoff, retry, retry_on_kinds
from resilience_kit.settings import ResilienceSettings

_logger = structlog.get_logger(__name__)

SAMPLE_TEXT = "Functional programming favors pure functions and immutability"


def flaky_service(fail_times: int, success_value: str) -> Callable[[], str]:
    """Build an action failing its first ``fail_times`` calls.

    Later calls return ``"<success_value> (call <n>)"``.
    """
    counter = itertools.count(1)

    def _call() -> str:
        call_number = next(counter)
        if call_number <= fail_times:
            raise TransientError(f"flaky failure #{call_number}")
        return f"{success_value} (call {call_number})"

    return _call


def _always_fail() -> str:
    raise TransientError("boom")


def run_demo(
    *,
    ttl_seconds: float = 0.1,
    cool_down_seconds: float = 0.3,
    backoff: BackoffFn | None = None,
    rng: random.Random | None = None,
    now_fn: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    logger: StructuredLogger | None = None,
) -> list[str]:
    """Run every scenario and return the produced lines.

    Each line is also logged as a ``demo_step`` event on ``logger``.
    """
    logger = _logger if logger is None else logger
    backoff = exponential_backoff(0.1) if backoff is None else backoff
    rng = random.Random(42) if rng is None else rng
    lines: list[str] = []

    def emit(line: str) -> None:
        log_info(logger, "demo_step", line=line)
        lines.append(line)

    computed: list[int] = []

    def square(n: int) -> int:
        computed.append(n)
        return n * n

    memo_square = memoize(square)
    emit(f"square 10 -> {memo_square(10)} computations={len(computed)}")
    emit(f"square 10 cached -> {memo_square(10)} computations={len(computed)}")

    computed.clear()
    ttl_square = memoize_with_ttl(square, ttl_seconds, now_fn=now_fn)
    emit(f"ttl first -> {ttl_square(5)} computations={len(computed)}")
    emit(f"ttl cached -> {ttl_square(5)} computations={len(computed)}")
    sleep(ttl_seconds * 1.2)
    emit(f"ttl expired -> {ttl_square(5)} computations={len(computed)}")

    fib = memoized_fibonacci()
    emit(f"fib 35 -> {fib(35)}")
    emit(f"fib 35 cached -> {fib(35)}")

    token_count = memoized_token_count()
    emit(f"token count -> {token_count(SAMPLE_TEXT)}")

    result = retry(
        flaky_service(2, "OK"),
        max_attempts=5,
        backoff=backoff,
        rng=rng,
        sleep=sleep,
    )
    emit(
        f"retry -> succeeded={result.succeeded} value={result.value} "
        f"attempts={result.attempts}"
    )

    breaker = CircuitBreaker(
        "demo",
        config=CircuitBreakerConfig(failure_threshold=2, cool_down=cool_down_seconds),
        now_fn=now_fn,
    )
    for call_number in range(1, 4):
        try:
            breaker.execute(_always_fail)
        except Exception as exc:
            emit(f"breaker call {call_number} -> {exc.__class__.__name__}: {exc}")
    sleep(cool_down_seconds * 1.2)
    emit(f"breaker after cool-down -> {breaker.execute(lambda: 'recovered')}")

    guarded_breaker = CircuitBreaker(
        "demo-composed",
        config=CircuitBreakerConfig(failure_threshold=3, cool_down=cool_down_seconds),
        now_fn=now_fn,
    )
    composed = retry(
        guarded_breaker.guard(flaky_service(4, "Eventually OK")),
        max_attempts=6,
        backoff=backoff,
        retry_on=retry_on_kinds(FailureKind.TRANSIENT, FailureKind.CIRCUIT_OPEN),
        rng=rng,
        sleep=sleep,
    )
    emit(
        f"retry+breaker -> succeeded={composed.succeeded} value={composed.value} "
        f"attempts={composed.attempts}"
    )
    return lines


def main(
    settings: ResilienceSettings | None = None,
    *,
    now_fn: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> list[str]:
    """Configure logging from ``RESILIENCE_*`` settings and run the demo."""
    settings = ResilienceSettings() if settings is None else settings
    logger = settings.configure_logging(static_context={"app": "resilience_kit.demo"})
    return run_demo(now_fn=now_fn, sleep=sleep, logger=logger)


if __name__ == "__main__":
    main()
