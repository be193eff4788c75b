"""Shared fixtures for the reposync test suite."""

import datetime
import threading
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from reposync.config import DaemonSettings, JobSpec
from reposync.status import StatusTracker

T0 = datetime.datetime(2026, 10, 16, 12, 0, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """A manually advanced wall clock for status timestamps."""

    def __init__(self, start: datetime.datetime = T0):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += datetime.timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job() -> JobSpec:
    return JobSpec(id="a", source="u1", destination="u2")


@pytest.fixture
def settings(tmp_path: Path) -> DaemonSettings:
    return DaemonSettings(
        work_dir=tmp_path,
        sync_interval=60,
        clone_retry_delay=10,
        remote_retry_delay=1,
    )


@pytest.fixture
def tracker(job: JobSpec, clock: FakeClock) -> StatusTracker:
    return StatusTracker(job.id, job.source, job.destination, clock=clock)


@pytest.fixture
def repo_factory(tmp_path: Path) -> MagicMock:
    """A stand-in for the GitRepo class whose clone always succeeds."""
    factory = MagicMock()
    repo = factory.return_value
    repo.pull.return_value = "Already up to date.\n"
    repo.read_head.return_value = b"abc\n"
    repo.tags.return_value = b""
    repo.push.return_value = ""
    repo.add_remote.return_value = ""
    repo.set_config.return_value = ""
    factory.clone.return_value = (repo, "Cloning into 'repo-a'...\n")
    return factory


class StoppingEvent(threading.Event):
    """An event that sets itself after ``limit`` waits, so retry loops end."""

    def __init__(self, limit: int, on_wait: Callable[[float | None], None] | None = None):
        super().__init__()
        self.limit = limit
        self.waits: list[float | None] = []
        self.on_wait = on_wait

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        if self.on_wait:
            self.on_wait(timeout)
        if len(self.waits) >= self.limit:
            self.set()
        return self.is_set()
