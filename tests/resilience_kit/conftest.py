from __future__ import annotations

import random

import pytest

from tests.resilience_kit.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a fresh manually advanced clock per test."""
    return FakeClock()


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def rng() -> random.Random:
    """Provide a seeded jitter source."""
    return random.Random(42)
