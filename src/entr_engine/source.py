"""Notification source implementation using watchdog."""

import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from entr_engine.models import WatchTarget
from entr_engine.watchers import RawEvent, RawEventCallback

logger = logging.getLogger(__name__)

_CHANGE_EVENTS = {"modified", "closed"}


def _norm(path: str | bytes | Path) -> str:
    return os.path.normpath(os.fsdecode(path))


class _TargetHandler(FileSystemEventHandler):
    """Translates watchdog events for one target into RawEvents.

    watchdog watches directories, so a file target is served by a
    non-recursive watch on its parent and events are filtered by path.
    """

    def __init__(self, target: WatchTarget, callback: RawEventCallback):
        super().__init__()
        self.target = target
        self.callback = callback
        self._path = _norm(target.path)

    def on_any_event(self, event: FileSystemEvent) -> None:
        raw = self._directory_event(event) if self.target.is_directory else self._file_event(event)
        if raw is None:
            return
        try:
            self.callback(raw)
        except Exception as e:
            logger.exception(f"Error delivering {raw.kind} event for {self._path}: {e}")

    def _file_event(self, event: FileSystemEvent) -> RawEvent | None:
        if event.is_directory:
            return None

        src = _norm(event.src_path)
        dest = _norm(event.dest_path) if getattr(event, "dest_path", "") else ""

        if event.event_type in _CHANGE_EVENTS and src == self._path:
            return RawEvent("changed", self.target.path)
        if event.event_type in ("created", "deleted") and src == self._path:
            return RawEvent("renamed", self.target.path)
        if event.event_type == "moved" and self._path in (src, dest):
            return RawEvent("renamed", self.target.path)
        return None

    def _directory_event(self, event: FileSystemEvent) -> RawEvent | None:
        if event.event_type == "created":
            entry = _norm(event.src_path)
        elif event.event_type == "moved" and getattr(event, "dest_path", ""):
            entry = _norm(event.dest_path)
        else:
            return None

        # Non-recursive watches still see the directory itself on some platforms
        if os.path.dirname(entry) != self._path:
            return None
        return RawEvent("renamed", self.target.path, filename=os.path.basename(entry))


class WatchdogSubscription:
    """Handler registration on a shared watchdog observer."""

    def __init__(self, observer: BaseObserver, handler: _TargetHandler, watch: ObservedWatch, path: Path):
        self.observer = observer
        self.handler = handler
        self.watch = watch
        self.path = path
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.observer.remove_handler_for_watch(self.handler, self.watch)
        except KeyError:
            # The observer already dropped the watch (e.g. stopped)
            logger.debug(f"Subscription for {self.path} was already released")


class WatchdogSource:
    """Notification source backed by a single watchdog Observer."""

    def __init__(self, observer: BaseObserver | None = None):
        """Initialize source.

        Args:
            observer: Observer to schedule watches on (defaults to the platform's native observer)
        """
        self.observer = observer or Observer()
        self._started = False

    def open(self, target: WatchTarget, callback: RawEventCallback) -> WatchdogSubscription:
        handler = _TargetHandler(target, callback)
        watch_dir = target.path if target.is_directory else target.path.parent
        watch = self.observer.schedule(handler, str(watch_dir), recursive=False)
        logger.debug(f"Subscribed to {target.kind.value} {target.path} (via {watch_dir})")
        return WatchdogSubscription(self.observer, handler, watch, target.path)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.observer.start()
        logger.debug("Notification source started")

    def stop(self) -> None:
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.debug("Notification source stopped")
        self.observer.unschedule_all()
