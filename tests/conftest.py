"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from entr_engine.models import Options, RunRequest, Timings, WatchTarget  # noqa: E402
from entr_engine.watchers import RawEvent  # noqa: E402

FAST_TIMINGS = Timings(coalesce_ms=10, debounce_ms=50, poll_interval_ms=10, poll_window_ms=100)


class FakeSubscription:
    """In-memory subscription handed out by FakeSource."""

    def __init__(self, target: WatchTarget, callback):
        self.target = target
        self.path = target.path
        self.callback = callback
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSource:
    """Notification source driven by the test instead of the OS."""

    def __init__(self):
        self.subscriptions: list[FakeSubscription] = []
        self.fail_paths: set[Path] = set()
        self.started = False
        self.stopped = 0

    def open(self, target: WatchTarget, callback) -> FakeSubscription:
        if target.path in self.fail_paths:
            raise FileNotFoundError(f"No such directory: {target.path}")
        subscription = FakeSubscription(target, callback)
        self.subscriptions.append(subscription)
        return subscription

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped += 1

    def active(self, path: Path | None = None) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if not s.closed and (path is None or s.path == path)]

    def emit(self, kind: str, path: Path, filename: str | None = None) -> None:
        for subscription in self.active(path):
            subscription.callback(RawEvent(kind, path, filename))


class FakeExecutor:
    """Executor stand-in that records requests and can hold a run open."""

    def __init__(self, hold: bool = False):
        self.hold = hold
        self.requests: list[RunRequest] = []
        self.kills = 0
        self.running = False
        self.release = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.running

    def kill(self) -> None:
        self.kills += 1
        if self.running:
            self.running = False
            self.release.set()

    async def run(self, request: RunRequest) -> int:
        self.requests.append(request)
        if self.hold:
            self.running = True
            await self.release.wait()
            self.running = False
        return 0


async def settle(seconds: float = 0.0, rounds: int = 5) -> None:
    """Let queued callbacks and tasks run."""
    if seconds:
        await asyncio.sleep(seconds)
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_options(command=("true",), files=(), **kwargs) -> Options:
    kwargs.setdefault("timings", FAST_TIMINGS)
    return Options(command=tuple(command), files=tuple(Path(f) for f in files), **kwargs)


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def watched_file(tmp_path):
    path = tmp_path / "watched.txt"
    path.write_text("initial\n")
    return path
