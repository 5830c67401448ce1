"""Shared data models for entr_engine."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

PLACEHOLDER = "/_"
"""Argument token replaced with the triggering path at run time."""

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_DIRECTORY_ALTERED = 2


class TargetKind(str, Enum):
    """How a path is watched."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class WatchTarget:
    """A path plus the way it is watched.

    Files are watched for modification; directories are watched
    non-recursively for new entries only.
    """

    path: Path
    kind: TargetKind = TargetKind.FILE

    @property
    def is_directory(self) -> bool:
        return self.kind is TargetKind.DIRECTORY


@dataclass(frozen=True)
class Timings:
    """Tunable time windows, in milliseconds."""

    coalesce_ms: int = 50
    """Quiet window before a burst of signals for one path fires."""

    debounce_ms: int = 100
    """Minimum gap between two accepted runs (ignored with all-events)."""

    poll_interval_ms: int = 50
    """Fallback poller interval after a rename."""

    poll_window_ms: int = 2000
    """How long the fallback poller lives."""

    queue_size: int = 1024
    """Capacity of the raw event queue between the notification thread and the loop."""


@dataclass(frozen=True)
class Options:
    """Immutable run configuration, built once before watching starts."""

    command: tuple[str, ...]
    """Utility and its arguments; may contain PLACEHOLDER."""

    files: tuple[Path, ...] = ()
    """Watched paths in input order (first one backs the placeholder on untriggered runs)."""

    all_events: bool = False
    clear: bool = False
    clear_twice: bool = False
    directories: bool = False
    directories_twice: bool = False
    non_interactive: bool = False
    postpone: bool = False
    restart: bool = False
    shell: bool = False
    exit_after: bool = False

    timings: Timings = field(default_factory=Timings)

    @property
    def debounce_delay(self) -> float:
        """Seconds that must pass between accepted runs."""
        if self.all_events:
            return 0.0
        return self.timings.debounce_ms / 1000.0


@dataclass(frozen=True)
class RunRequest:
    """One request to run the utility."""

    options: Options
    trigger: Path | None = None
    """Path whose change caused the run; None for initial and manual runs."""

    reason: Literal["initial", "manual", "file"] = "file"

    def describe(self) -> str:
        if self.trigger is None:
            return self.reason
        return f"{self.reason}: {self.trigger}"
