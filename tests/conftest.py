"""Shared pytest fixtures."""

import os
import tempfile
from datetime import datetime, timezone
from typing import Generator, Optional

import pytest
import yaml

from cpu_watcher.core.engine import AlertEngine
from cpu_watcher.core.sampler import ProcessSampler
from cpu_watcher.models import ProcessSnapshot
from cpu_watcher.notifiers.base import Notifier

ENV_VARS = [
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "CPU_THRESHOLD",
    "CHECK_INTERVAL",
    "COOLDOWN_SECONDS",
    "LOGLEVEL",
    "CPU_WATCHER_CONFIG",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's environment out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def proc(
    pid: int,
    cpu: float,
    name: Optional[str] = None,
    start_time: Optional[datetime] = None,
) -> ProcessSnapshot:
    return ProcessSnapshot(
        pid=pid, name=name or f"proc-{pid}", cpu_percent=cpu, start_time=start_time
    )


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSampler(ProcessSampler):
    """Sampler returning canned snapshots."""

    def __init__(self, snapshots=None, command_lines=None, **kwargs):
        self.snapshots = list(snapshots or [])
        self.command_lines = command_lines or {}
        self.calls = 0

    def snapshot(self) -> list[ProcessSnapshot]:
        self.calls += 1
        if isinstance(self.snapshots, Exception):
            raise self.snapshots
        return list(self.snapshots)

    def command_line(self, pid: int) -> Optional[str]:
        value = self.command_lines.get(pid)
        if isinstance(value, Exception):
            raise value
        return value


class FakeNotifier(Notifier):
    """Notifier recording every attempt.

    ``outcome`` is returned from ``send``; an exception instance is raised.
    """

    def __init__(self, outcome=True):
        self.outcome = outcome
        self.sent: list[tuple] = []

    def send(self, destination, text: str) -> bool:
        self.sent.append((destination, text))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sampler() -> FakeSampler:
    return FakeSampler()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def engine(sampler, notifier, clock) -> AlertEngine:
    """Engine with threshold 50%, 600s cooldown and fake collaborators."""
    return AlertEngine(
        sampler=sampler,
        notifier=notifier,
        destination="tgram://token/chat",
        threshold=50.0,
        check_interval=1.0,
        cooldown_seconds=600,
        clock=clock,
        sleep=lambda seconds: clock.advance(seconds),
        hostname="testhost",
    )


@pytest.fixture
def started_at() -> datetime:
    return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def temp_config_file(tmp_path) -> Generator[str, None, None]:
    """Create a temporary config file for testing."""
    config = {
        "watcher": {"threshold": 75.0, "interval": 2.0, "cooldown": 300},
        "notifications": [
            {"type": "telegram", "token": "123:abc", "chat_id": "42"},
        ],
        "logging": {"level": "debug", "file": "stdout"},
        "paths": {"pid_file": str(tmp_path / "cpu-watcher.pid")},
    }

    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        config_path = f.name

    yield config_path

    # Cleanup
    os.unlink(config_path)
