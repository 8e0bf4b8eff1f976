from __future__ import annotations

import time
from collections.abc import Callable, Hashable, Mapping
from datetime import timedelta
from typing import TextIO, TypeVar

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilience_kit.circuit_breaker import CircuitBreakerConfig
from resilience_kit.logging import configure_structlog, get_log_level_value
from resilience_kit.memoize import MemoizedFunction, memoize_with_ttl
from resilience_kit.retry import RetryBackoffPolicy

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")

DEFAULT_ENV_PREFIX = "RESILIENCE_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ResilienceSettings(BaseSettings):
    """Environment driven defaults for retry, breaker and memoization."""

    model_config = prefixed_settings_config(DEFAULT_ENV_PREFIX)

    retry_max_attempts: int = 5
    retry_min_backoff_seconds: float = 0.1
    retry_max_backoff_seconds: float = 10.0
    breaker_failure_threshold: int = 5
    breaker_cool_down_seconds: float = 30.0
    memo_ttl_seconds: float = 60.0
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    @model_validator(mode="after")
    def _validate_resilience_settings(self) -> ResilienceSettings:
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be >= 1")
        if self.retry_min_backoff_seconds < 0:
            raise ValueError("retry_min_backoff_seconds must be >= 0")
        if self.retry_max_backoff_seconds < self.retry_min_backoff_seconds:
            raise ValueError(
                "retry_max_backoff_seconds must be >= retry_min_backoff_seconds"
            )
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_cool_down_seconds < 0:
            raise ValueError("breaker_cool_down_seconds must be >= 0")
        return self

    def retry_policy(self) -> RetryBackoffPolicy:
        """Build the retry backoff policy described by these settings."""
        return RetryBackoffPolicy(
            attempts=self.retry_max_attempts,
            min_seconds=self.retry_min_backoff_seconds,
            max_seconds=self.retry_max_backoff_seconds,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the circuit breaker configuration described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            cool_down=self.breaker_cool_down_seconds,
        )

    def memo_ttl(self) -> timedelta:
        """Return the cache entry lifetime for ``memoize_with_ttl``."""
        return timedelta(seconds=self.memo_ttl_seconds)

    def memoize(
        self,
        fn: Callable[[K], R],
        *,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> MemoizedFunction[K, R]:
        """Wrap ``fn`` with a cache expiring after ``memo_ttl_seconds``."""
        return memoize_with_ttl(fn, self.memo_ttl(), now_fn=now_fn)

    def configure_logging(
        self,
        *,
        static_context: Mapping[str, object] | None = None,
        stream: TextIO | None = None,
    ) -> structlog.stdlib.BoundLogger:
        """Configure structlog at ``log_level`` and return the package logger."""
        return configure_structlog(
            log_level=self.log_level,
            static_context=static_context,
            stream=stream,
        )
