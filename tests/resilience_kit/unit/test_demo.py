from __future__ import annotations

import logging

import pytest

from resilience_kit.demo import flaky_service, main, run_demo
from resilience_kit.errors import TransientError
from tests.resilience_kit.support.fakes import FakeClock, FakeLogger


def test_flaky_service_fails_then_succeeds() -> None:
    service = flaky_service(2, "OK")

    with pytest.raises(TransientError, match="flaky failure #1"):
        service()
    with pytest.raises(TransientError, match="flaky failure #2"):
        service()
    assert service() == "OK (call 3)"
    assert service() == "OK (call 4)"


def test_run_demo_on_fake_clock(fake_clock: FakeClock) -> None:
    lines = run_demo(now_fn=fake_clock, sleep=fake_clock.sleep)

    assert lines == [
        "square 10 -> 100 computations=1",
        "square 10 cached -> 100 computations=1",
        "ttl first -> 25 computations=1",
        "ttl cached -> 25 computations=1",
        "ttl expired -> 25 computations=2",
        "fib 35 -> 9227465",
        "fib 35 cached -> 9227465",
        "token count -> 7",
        "retry -> succeeded=True value=OK (call 3) attempts=3",
        "breaker call 1 -> TransientError: boom",
        "breaker call 2 -> TransientError: boom",
        "breaker call 3 -> CircuitOpenError: circuit_open: demo retry_after=0.3s",
        "breaker after cool-down -> recovered",
        "retry+breaker -> succeeded=True value=Eventually OK (call 5) attempts=5",
    ]


def test_run_demo_logs_each_line(
    fake_clock: FakeClock, fake_logger: FakeLogger
) -> None:
    lines = run_demo(now_fn=fake_clock, sleep=fake_clock.sleep, logger=fake_logger)

    assert fake_logger.calls == [
        ("info", "demo_step", {"line": line}) for line in lines
    ]


def test_main_configures_logging_from_settings(
    monkeypatch: pytest.MonkeyPatch, fake_clock: FakeClock
) -> None:
    monkeypatch.setenv("RESILIENCE_LOG_LEVEL", "ERROR")

    lines = main(now_fn=fake_clock, sleep=fake_clock.sleep)

    assert logging.getLogger().level == logging.ERROR
    assert lines[-1] == (
        "retry+breaker -> succeeded=True value=Eventually OK (call 5) attempts=5"
    )
