from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from resilience_kit.memoize import (
    CacheEntry,
    memoize,
    memoize_recursive,
    memoize_with_ttl,
    memoized_fibonacci,
    memoized_token_count,
)
from tests.resilience_kit.support.fakes import FakeClock


class _CountingSquare:
    def __init__(self) -> None:
        self.calls: list[int] = []

    def __call__(self, n: int) -> int:
        self.calls.append(n)
        return n * n


def test_cache_entry_freshness() -> None:
    assert CacheEntry(value=1).is_fresh(10.0)
    assert CacheEntry(value=1, expires_at=5.0).is_fresh(4.9)
    assert not CacheEntry(value=1, expires_at=5.0).is_fresh(5.0)


def test_memoize_computes_once_per_distinct_key() -> None:
    square = _CountingSquare()
    memo = memoize(square)

    assert memo(3) == 9
    assert memo(3) == 9
    assert memo(4) == 16
    assert memo(4) == 16
    assert memo(3) == 9

    assert square.calls == [3, 4]
    assert len(memo) == 2


def test_memoize_preserves_wrapped_metadata() -> None:
    def double(n: int) -> int:
        """Double a number."""
        return n * 2

    memo = memoize(double)

    assert memo.__name__ == "double"
    assert memo.__doc__ == "Double a number."
    assert memo.__wrapped__ is double


def test_memoize_does_not_cache_failures() -> None:
    calls: list[str] = []

    def parse(text: str) -> int:
        calls.append(text)
        if len(calls) == 1:
            raise ValueError("transient parse error")
        return int(text)

    memo = memoize(parse)

    with pytest.raises(ValueError, match="transient parse error"):
        memo("42")
    assert len(memo) == 0

    assert memo("42") == 42
    assert memo("42") == 42
    assert calls == ["42", "42"]


def test_memoize_cache_clear_forces_recomputation() -> None:
    square = _CountingSquare()
    memo = memoize(square)
    memo(2)

    memo.cache_clear()

    assert len(memo) == 0
    assert memo(2) == 4
    assert square.calls == [2, 2]


def test_memoize_with_ttl_scenario(fake_clock: FakeClock) -> None:
    square = _CountingSquare()
    memo = memoize_with_ttl(square, 0.1, now_fn=fake_clock)

    assert memo(5) == 25
    assert len(square.calls) == 1

    fake_clock.advance(0.05)
    assert memo(5) == 25
    assert len(square.calls) == 1

    fake_clock.advance(0.1)
    assert memo(5) == 25
    assert len(square.calls) == 2


def test_memoize_with_ttl_refreshes_expiry_after_recompute(
    fake_clock: FakeClock,
) -> None:
    square = _CountingSquare()
    memo = memoize_with_ttl(square, timedelta(seconds=1), now_fn=fake_clock)

    memo(2)
    fake_clock.advance(1.0)
    memo(2)
    fake_clock.advance(0.5)
    memo(2)

    assert square.calls == [2, 2]


def test_memoize_with_ttl_expires_exactly_at_deadline(fake_clock: FakeClock) -> None:
    square = _CountingSquare()
    memo = memoize_with_ttl(square, 2.0, now_fn=fake_clock)

    memo(1)
    fake_clock.advance(1.5)
    memo(1)
    fake_clock.advance(0.5)
    memo(1)

    assert square.calls == [1, 1]


@pytest.mark.parametrize("ttl", [0, -1.0, timedelta(0)])
def test_memoize_with_non_positive_ttl_always_recomputes(
    fake_clock: FakeClock, ttl: float | timedelta
) -> None:
    square = _CountingSquare()
    memo = memoize_with_ttl(square, ttl, now_fn=fake_clock)

    memo(7)
    memo(7)
    memo(7)

    assert square.calls == [7, 7, 7]


def test_memoize_with_ttl_does_not_cache_failures(fake_clock: FakeClock) -> None:
    attempts: list[int] = []

    def flaky(n: int) -> int:
        attempts.append(n)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        return n

    memo = memoize_with_ttl(flaky, 10.0, now_fn=fake_clock)

    with pytest.raises(RuntimeError):
        memo(1)
    assert memo(1) == 1
    assert memo(1) == 1
    assert attempts == [1, 1]


def test_memoize_recursive_passes_wrapper_to_step() -> None:
    seen: list[int] = []

    def factorial(self_fn, n: int) -> int:  # type: ignore[no-untyped-def]
        seen.append(n)
        return 1 if n <= 1 else n * self_fn(n - 1)

    memo = memoize_recursive(factorial)

    assert memo(5) == 120
    assert memo(6) == 720
    assert seen == [5, 4, 3, 2, 1, 6]


def test_memoized_fibonacci_values() -> None:
    fib = memoized_fibonacci()

    assert [fib(n) for n in range(10)] == [0, 1, 1, 2, 3, 5, 8, 13, 21, 34]
    assert fib(35) == 9227465
    assert len(fib) == 36


def test_memoized_fibonacci_rejects_negative_input() -> None:
    fib = memoized_fibonacci()

    with pytest.raises(ValueError):
        fib(-1)


def test_memoized_token_count() -> None:
    count = memoized_token_count()
    text = "Functional programming favors pure functions and immutability"

    assert count(text) == 7
    assert count(text) == 7
    assert count("  spaced   out  ") == 2
    assert count("") == 0
    assert count(" \t\n") == 0
    assert len(count) == 4


def test_memoize_is_safe_under_concurrent_access() -> None:
    calls: list[int] = []
    lock = threading.Lock()

    def identity(n: int) -> int:
        with lock:
            calls.append(n)
        return n

    memo = memoize(identity)
    barrier = threading.Barrier(8)
    results: list[int] = []

    def worker() -> None:
        barrier.wait()
        for key in range(50):
            value = memo(key)
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(memo) == 50
    assert sorted(set(results)) == list(range(50))
    assert set(calls) == set(range(50))
