"""Abstract notification source protocol for file watching implementations."""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from entr_engine.models import WatchTarget

RawEventKind = Literal["changed", "renamed"]


@dataclass(frozen=True)
class RawEvent:
    """One notification as reported by the source, before normalization."""

    kind: RawEventKind
    """``changed`` for in-place writes, ``renamed`` for anything that may break the path binding."""

    path: Path
    """The subscribed path (file or directory)."""

    filename: str | None = None
    """Entry name inside a watched directory, when the source knows it."""


RawEventCallback = Callable[[RawEvent], None]


class Subscription(Protocol):
    """A live subscription for one path. ``close()`` must be idempotent."""

    path: Path

    def close(self) -> None:
        ...


class NotificationSource(Protocol):
    """Protocol for per-path change notification implementations.

    Callbacks may be invoked from any thread.
    """

    def open(self, target: WatchTarget, callback: RawEventCallback) -> Subscription:
        """Subscribe to changes of a single file or to new entries of a directory."""
        ...

    def start(self) -> None:
        """Start delivering events."""
        ...

    def stop(self) -> None:
        """Stop delivering events and release OS resources."""
        ...
