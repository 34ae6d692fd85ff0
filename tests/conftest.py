"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self):
        self.infos: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def info(self, msg: str) -> None:
        self.infos.append(msg)

    def warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def error(self, msg: str) -> None:
        self.errors.append(msg)


class FakeSubscription:
    """In-memory subscription; tests push events with emit()."""

    def __init__(self, config, loop, on_event):
        self.config = config
        self.loop = loop
        self.on_event = on_event
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def close(self):
        self.closed = True

    def emit(self, kind, path):
        self.on_event(kind, Path(path))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fake_subscriptions():
    """Subscription factory recording every subscription it creates."""
    created: list[FakeSubscription] = []

    def factory(config, loop, on_event):
        subscription = FakeSubscription(config, loop, on_event)
        created.append(subscription)
        return subscription

    factory.created = created
    return factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _no_dev_server_env(monkeypatch):
    """Keep RULEWATCH_SERVE from the outer environment out of the tests."""
    monkeypatch.delenv("RULEWATCH_SERVE", raising=False)
