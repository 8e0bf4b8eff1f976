from __future__ import annotations

from dataclasses import dataclass, field

from resilience_kit.circuit_breaker import CircuitState


class FakeClock:
    """Manually advanced monotonic clock; ``sleep`` moves time forward."""

    def __init__(self, start: float = 1_000.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.calls.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: object) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)

    @property
    def events(self) -> list[str]:
        return [event for _, event, _ in self.calls]


@dataclass(slots=True)
class RecordingListener:
    events: list[tuple[str, object]] = field(default_factory=list)

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        self.events.append(("state", (name, old, new)))

    def on_call_rejected(self, name: str) -> None:
        self.events.append(("rejected", name))

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        self.events.append(("succeeded", name))

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        self.events.append(("failed", (name, exc.__class__.__name__)))

    def state_changes(self) -> list[tuple[CircuitState, CircuitState]]:
        changes: list[tuple[CircuitState, CircuitState]] = []
        for kind, payload in self.events:
            if kind == "state":
                _, old, new = payload  # type: ignore[misc]
                changes.append((old, new))
        return changes


@dataclass(slots=True)
class ExplodingListener:
    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        raise RuntimeError("boom")

    def on_call_rejected(self, name: str) -> None:
        raise RuntimeError("boom")

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        raise RuntimeError("boom")

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        raise RuntimeError("boom")


class CountingAction:
    """Zero-argument action failing its first ``fail_times`` calls."""

    def __init__(
        self,
        *,
        fail_times: int = 0,
        value: object = "ok",
        error: type[Exception] = RuntimeError,
    ) -> None:
        self.fail_times = fail_times
        self.value = value
        self.error = error
        self.calls = 0

    def __call__(self) -> object:
        self.calls += 1
        if self.calls <= self.fail_times:
            raise self.error(f"failure #{self.calls}")
        return self.value
