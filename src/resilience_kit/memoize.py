"""Memoizing wrappers for single-argument functions.

Concurrency notes:
  - The backing dict is guarded by a ``threading.Lock``; only lookups and
    inserts happen under it.
  - The wrapped function runs outside the lock. Concurrent misses on the same
    key may compute more than once and the last stored value wins. Running
    outside the lock is what allows a memoized function to call itself.
  - Failures are never stored; the next call with the same key recomputes.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import timedelta
from typing import Generic, TypeVar

import structlog

from resilience_kit.logging import log_debug

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")

_logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry(Generic[R]):
    """One cached result.

    Attributes:
        value: The computed result.
        expires_at: Monotonic timestamp after which the entry is stale, or
            ``None`` for entries that never expire.
    """

    value: R
    expires_at: float | None = None

    def is_fresh(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


def _ttl_seconds(ttl: float | timedelta) -> float:
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


class MemoizedFunction(Generic[K, R]):
    """Callable wrapper caching results of ``fn`` per input key."""

    def __init__(
        self,
        fn: Callable[[K], R],
        *,
        ttl: float | timedelta | None = None,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        """Wrap ``fn`` with a per-key cache.

        Args:
            fn: Single-argument function to memoize.
            ttl: Entry lifetime in seconds (or a ``timedelta``). ``None``
                disables expiry; zero or negative recomputes on every call.
            now_fn: Monotonic clock used for expiry comparisons.
        """
        functools.update_wrapper(self, fn)
        self._fn = fn
        self._ttl = None if ttl is None else _ttl_seconds(ttl)
        self._now_fn = now_fn
        self._entries: dict[K, CacheEntry[R]] = {}
        self._lock = threading.Lock()

    def __call__(self, key: K) -> R:
        now = self._now_fn()
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(now):
            log_debug(_logger, "memo_cache_hit", function=self._name, key=repr(key))
            return entry.value

        log_debug(_logger, "memo_cache_miss", function=self._name, key=repr(key))
        value = self._fn(key)
        expires_at = None if self._ttl is None else now + self._ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def _name(self) -> str:
        return getattr(self._fn, "__qualname__", self._fn.__class__.__qualname__)

    def cache_clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._entries.clear()


def memoize(fn: Callable[[K], R]) -> MemoizedFunction[K, R]:
    """Return ``fn`` wrapped with a non-expiring per-key cache."""
    return MemoizedFunction(fn)


def memoize_with_ttl(
    fn: Callable[[K], R],
    ttl: float | timedelta,
    *,
    now_fn: Callable[[], float] = time.monotonic,
) -> MemoizedFunction[K, R]:
    """Return ``fn`` wrapped with a cache whose entries expire after ``ttl``.

    Expired entries are replaced lazily on the next access for their key.
    """
    return MemoizedFunction(fn, ttl=ttl, now_fn=now_fn)


def memoize_recursive(
    step: Callable[[Callable[[K], R], K], R],
) -> MemoizedFunction[K, R]:
    """Build a memoized function that may call itself.

    ``step`` receives the memoized wrapper as its first argument and uses it
    for recursive calls, so every sub-result goes through the cache.
    """
    memoized: MemoizedFunction[K, R]

    def _apply(key: K) -> R:
        return step(memoized, key)

    functools.update_wrapper(_apply, step)
    memoized = MemoizedFunction(_apply)
    return memoized


def _fibonacci_step(fib: Callable[[int], int], n: int) -> int:
    if n < 0:
        raise ValueError("n must be >= 0")
    if n <= 1:
        return n
    return fib(n - 1) + fib(n - 2)


def memoized_fibonacci() -> MemoizedFunction[int, int]:
    """Return a memoized Fibonacci function (``fib(0) == 0``, ``fib(1) == 1``)."""
    return memoize_recursive(_fibonacci_step)


def _count_tokens(text: str) -> int:
    return len(text.split())


def memoized_token_count() -> MemoizedFunction[str, int]:
    """Return a memoized whitespace token counter.

    Leading and trailing whitespace never produce empty tokens, so blank
    text counts as zero.
    """
    return memoize(_count_tokens)
