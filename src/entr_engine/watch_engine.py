"""Watch engine: turns raw notifications into FileChanged / NewEntry signals.

Raw events arrive on the notification thread and are handed to the event
loop through a bounded queue; a single pump task dispatches them, so every
piece of engine state is only touched from the loop thread.

Each watched file runs a small state machine::

    SUBSCRIBED --renamed--> LOST --resubscribe--> POLLING --expiry--> SUBSCRIBED

Some notification backends stop reporting once a path is replaced by an
editor's write-then-rename, so a rename reopens the subscription and a
short-lived mtime poller covers the gap. Delivery is best-effort.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path

from entr_engine.models import TargetKind, Timings, WatchTarget
from entr_engine.watchers import NotificationSource, RawEvent, Subscription

logger = logging.getLogger(__name__)

PathCallback = Callable[[Path], None]


class FileWatchState(str, Enum):
    SUBSCRIBED = "subscribed"
    LOST = "lost"
    POLLING = "polling"


def _mtime(path: Path) -> int | None:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


class PollGuard:
    """Temporary mtime poller for one path, expiring after a fixed window."""

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        interval: float,
        window: float,
        loop: asyncio.AbstractEventLoop,
    ):
        self.path = path
        self.on_change = on_change
        self.interval = interval
        self.deadline = loop.time() + window
        self._loop = loop
        self.task = loop.create_task(self._poll())

    async def _poll(self) -> None:
        last = _mtime(self.path)
        while self._loop.time() < self.deadline:
            await asyncio.sleep(self.interval)
            current = _mtime(self.path)
            if current != last:
                logger.debug(f"Poller saw mtime change on {self.path}")
                last = current
                self.on_change()
        logger.debug(f"Poller for {self.path} expired")

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> None:
        self.task.cancel()


class _FileWatch:
    """Subscription state for one watched file."""

    def __init__(self, target: WatchTarget, subscription: Subscription | None):
        self.target = target
        self.subscription = subscription
        self.state = FileWatchState.SUBSCRIBED
        self.poll_guard: PollGuard | None = None


class WatchHandle:
    """Live set of subscriptions returned by :meth:`WatchEngine.subscribe`."""

    def __init__(
        self,
        source: NotificationSource,
        timings: Timings,
        include_hidden: bool,
        on_file_changed: PathCallback,
        on_new_entry: PathCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        self._source = source
        self._timings = timings
        self._include_hidden = include_hidden
        self._on_file_changed = on_file_changed
        self._on_new_entry = on_new_entry
        self._loop = loop
        self._queue: asyncio.Queue[RawEvent] = asyncio.Queue(maxsize=timings.queue_size)
        self._files: dict[Path, _FileWatch] = {}
        self._directories: dict[Path, Subscription] = {}
        self._pump: asyncio.Task | None = None
        self._closed = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _open(self, target: WatchTarget) -> Subscription | None:
        try:
            return self._source.open(target, self._deliver)
        except OSError as e:
            logger.warning(f"Cannot watch {target.path}: {e}")
            return None

    def _watch_file(self, target: WatchTarget) -> None:
        subscription = self._open(target)
        if subscription is not None:
            self._files[target.path] = _FileWatch(target, subscription)

    def _watch_directory(self, target: WatchTarget) -> None:
        subscription = self._open(target)
        if subscription is not None:
            self._directories[target.path] = subscription

    def _start(self) -> None:
        self._pump = self._loop.create_task(self._run_pump())
        self._source.start()

    # ------------------------------------------------------------------
    # Event delivery
    # ------------------------------------------------------------------

    def _deliver(self, raw: RawEvent) -> None:
        """Called from the notification thread."""
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, raw)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped {raw.kind} event for {raw.path}: loop closed")

    def _enqueue(self, raw: RawEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull:
            logger.debug(f"Event queue full, dropped {raw.kind} event for {raw.path}")

    async def _run_pump(self) -> None:
        while True:
            raw = await self._queue.get()
            try:
                self.dispatch(raw)
            except Exception as e:
                logger.exception(f"Error handling {raw.kind} event for {raw.path}: {e}")

    def dispatch(self, raw: RawEvent) -> None:
        """Normalize one raw event. Runs on the loop thread."""
        if self._closed:
            return

        file_watch = self._files.get(raw.path)
        if file_watch is not None:
            if raw.kind == "renamed":
                self._recover(file_watch)
            else:
                logger.debug(f"Change on {raw.path}")
                self._emit(self._on_file_changed, raw.path)
            return

        if raw.path in self._directories:
            self._directory_entry(raw)
            return

        logger.debug(f"Event for unwatched path {raw.path} ignored")

    def _directory_entry(self, raw: RawEvent) -> None:
        if not raw.filename:
            return

        entry = Path(os.path.abspath(raw.path / raw.filename))
        if entry in self._files:
            # Replaced in place (atomic save); the file watch reports it
            logger.debug(f"Entry {entry} is a watched file, not a new entry")
            return
        if not entry.exists():
            logger.debug(f"Entry {entry} vanished before it could be examined")
            return
        if not self._include_hidden and raw.filename.startswith("."):
            logger.debug(f"Ignoring hidden entry {entry}")
            return

        logger.debug(f"New entry {entry} in {raw.path}")
        self._emit(self._on_new_entry, entry)

    def _recover(self, file_watch: _FileWatch) -> None:
        path = file_watch.target.path
        logger.debug(f"Rename on {path}, re-subscribing")

        file_watch.state = FileWatchState.LOST
        if file_watch.subscription is not None:
            file_watch.subscription.close()
        file_watch.subscription = self._open(file_watch.target)

        self._emit(self._on_file_changed, path)

        if file_watch.poll_guard is not None:
            file_watch.poll_guard.cancel()

        guard = PollGuard(
            path,
            on_change=lambda: self._emit(self._on_file_changed, path),
            interval=self._timings.poll_interval_ms / 1000.0,
            window=self._timings.poll_window_ms / 1000.0,
            loop=self._loop,
        )
        guard.task.add_done_callback(lambda _task: self._poll_finished(file_watch, guard))
        file_watch.poll_guard = guard
        file_watch.state = FileWatchState.POLLING

    def _poll_finished(self, file_watch: _FileWatch, guard: PollGuard) -> None:
        # A newer rename may have replaced this guard already
        if file_watch.poll_guard is guard:
            file_watch.poll_guard = None
            file_watch.state = FileWatchState.SUBSCRIBED

    def _emit(self, callback: PathCallback, path: Path) -> None:
        if self._closed:
            return
        try:
            callback(path)
        except Exception as e:
            logger.exception(f"Error in watch callback for {path}: {e}")

    # ------------------------------------------------------------------
    # Queries / teardown
    # ------------------------------------------------------------------

    def state_of(self, path: Path) -> FileWatchState | None:
        file_watch = self._files.get(path)
        return file_watch.state if file_watch else None

    @property
    def active_subscriptions(self) -> int:
        files = sum(1 for fw in self._files.values() if fw.subscription is not None)
        return files + len(self._directories)

    @property
    def pending_pollers(self) -> int:
        return sum(1 for fw in self._files.values() if fw.poll_guard is not None and not fw.poll_guard.done)

    @property
    def closed(self) -> bool:
        return self._closed

    def cleanup(self) -> None:
        """Release every subscription and cancel outstanding timers. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._pump is not None:
            self._pump.cancel()

        for file_watch in self._files.values():
            if file_watch.poll_guard is not None:
                file_watch.poll_guard.cancel()
                file_watch.poll_guard = None
            if file_watch.subscription is not None:
                file_watch.subscription.close()
                file_watch.subscription = None

        for subscription in self._directories.values():
            subscription.close()
        self._directories.clear()

        try:
            self._source.stop()
        except Exception as e:
            logger.error(f"Error stopping notification source: {e}")
        logger.debug("Watch engine cleaned up")


class WatchEngine:
    """Factory for watch handles, holding the engine settings."""

    def __init__(
        self,
        source: NotificationSource | None = None,
        timings: Timings | None = None,
        watch_directories: bool = False,
        include_hidden: bool = False,
    ):
        """Initialize engine.

        Args:
            source: Notification source (defaults to a watchdog-backed source)
            timings: Poll interval, poll window and queue size
            watch_directories: Whether directory targets are subscribed at all
            include_hidden: Whether new dot-entries in watched directories are reported
        """
        if source is None:
            from entr_engine.source import WatchdogSource

            source = WatchdogSource()
        self.source = source
        self.timings = timings or Timings()
        self.watch_directories = watch_directories
        self.include_hidden = include_hidden

    def subscribe(
        self,
        targets: Iterable[WatchTarget],
        on_file_changed: PathCallback,
        on_new_entry: PathCallback,
    ) -> WatchHandle:
        """Subscribe to every target. Must be called from a running event loop.

        Args:
            targets: Files and directories to watch
            on_file_changed: Called with the file path on each change signal
            on_new_entry: Called with the absolute path of each new directory entry

        Returns:
            WatchHandle whose ``cleanup()`` releases everything
        """
        loop = asyncio.get_running_loop()
        handle = WatchHandle(
            self.source,
            self.timings,
            self.include_hidden,
            on_file_changed,
            on_new_entry,
            loop,
        )

        seen: dict[Path, TargetKind] = {}
        for target in targets:
            target = WatchTarget(Path(os.path.abspath(target.path)), target.kind)
            previous = seen.get(target.path)
            if previous is not None:
                if previous is not target.kind:
                    logger.warning(f"{target.path} listed as both file and directory, keeping {previous.value}")
                continue
            seen[target.path] = target.kind

            if target.is_directory:
                if self.watch_directories:
                    handle._watch_directory(target)
                else:
                    logger.debug(f"Directory watching disabled, skipping {target.path}")
            else:
                handle._watch_file(target)

        handle._start()
        logger.debug(f"Watching {len(handle._files)} file(s) and {len(handle._directories)} directory target(s)")
        return handle
