"""Orchestrator for pyentr: wires the watch engine, coalescer and executor.

The controller owns the run policy:

- a new entry in a watched directory kills the child and exits with 2
- while a child runs, signals are dropped unless all-events or restart mode is on
- accepted runs are at least ``debounce_delay`` apart
- SIGINT / SIGTERM and the ``q`` key kill the child and exit with 0
"""

import asyncio
import logging
import signal
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path

from entr_engine.debounce import Coalescer
from entr_engine.executor import ProcessExecutor
from entr_engine.models import EXIT_DIRECTORY_ALTERED, EXIT_OK, Options, RunRequest, WatchTarget
from entr_engine.notifier import EntrNotifier, NoOpNotifier
from entr_engine.watch_engine import WatchEngine, WatchHandle

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class EntrController:
    """Non-UI controller for the watch-and-run loop. Primary embed point.

    Stable methods: attach(), detach(), run(), request_run(), manual_run(),
    quit(), shutdown(), state. Internal methods (_on_signal, etc.) may change.
    """

    def __init__(
        self,
        options: Options,
        targets: Sequence[WatchTarget],
        notifier: EntrNotifier | None = None,
        engine: WatchEngine | None = None,
        executor: ProcessExecutor | None = None,
        interactive: bool | None = None,
        handle_signals: bool = True,
    ):
        """Initialize controller.

        Args:
            options: Immutable run configuration
            targets: Files and directories to watch
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
            engine: Watch engine (defaults to a watchdog-backed engine built from options)
            executor: Process executor (defaults to one that exits through shutdown())
            interactive: Read keys from the terminal. None means "unless -n, when a TTY is available".
            handle_signals: Install SIGINT/SIGTERM handlers on attach()
        """
        self.options = options
        self.targets = list(targets)
        self.notifier = notifier or NoOpNotifier()
        self.engine = engine or WatchEngine(
            timings=options.timings,
            watch_directories=options.directories,
            include_hidden=options.directories_twice,
        )
        self.executor = executor or ProcessExecutor(notifier=self.notifier, on_exit=self.shutdown)
        self.coalescer = Coalescer(self._on_signal, window_ms=options.timings.coalesce_ms)
        self.interactive = (not options.non_interactive) if interactive is None else interactive
        self.handle_signals = handle_signals

        self._loop: asyncio.AbstractEventLoop | None = None
        self._watch_handle: WatchHandle | None = None
        self._exit_future: asyncio.Future[int] | None = None
        self._last_run: float | None = None
        self._tasks: set[asyncio.Task] = set()
        self._signals_installed: list[signal.Signals] = []
        self.keyboard = None

        # Outbound events (host wires these)
        self.on_run_started: Callable[[RunRequest], None] | None = None
        self.on_run_finished: Callable[[RunRequest, int], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach to a running event loop and start watching. Idempotent."""
        if self._loop is not None:
            return

        if not loop.is_running():
            raise RuntimeError("Event loop must be running before attach().")

        self._loop = loop
        self._exit_future = loop.create_future()

        self._watch_handle = self.engine.subscribe(
            self.targets,
            on_file_changed=lambda path: self.coalescer.notify(path, False),
            on_new_entry=lambda path: self.coalescer.notify(path, True),
        )

        if self.handle_signals:
            self._install_signal_handlers()

        if self.interactive:
            self._attach_keyboard()

    def detach(self) -> None:
        """Stop watching and release terminal and signal handlers. Safe to call twice."""
        self.coalescer.cleanup()

        if self._watch_handle is not None:
            self._watch_handle.cleanup()

        if self.keyboard is not None:
            self.keyboard.detach()
            self.keyboard = None

        if self._loop is not None:
            for signum in self._signals_installed:
                self._loop.remove_signal_handler(signum)
        self._signals_installed = []

    def _install_signal_handlers(self) -> None:
        for signum in TERMINATION_SIGNALS:
            try:
                self._loop.add_signal_handler(signum, self._on_termination_signal, signum)
            except (NotImplementedError, RuntimeError) as e:
                logger.debug(f"Cannot install handler for {signum.name}: {e}")
                continue
            self._signals_installed.append(signum)

    def _attach_keyboard(self) -> None:
        from pyentr.keyboard_handler import KeyboardHandler, open_terminal

        terminal = open_terminal()
        if terminal is None:
            logger.debug("No controlling terminal, interactive keys disabled")
            return

        handler = KeyboardHandler(self)
        handler.bind_all()
        try:
            handler.attach(self._loop, terminal)
        except OSError as e:
            logger.debug(f"Cannot read keys from terminal: {e}")
            terminal.close()
            return
        self.keyboard = handler

    async def run(self) -> int:
        """Watch and run until a quit, a signal, a structural change or ``-z``.

        Returns:
            Program exit code
        """
        self.attach(asyncio.get_running_loop())
        watched_files = sum(1 for t in self.targets if not t.is_directory)
        self.notifier.info(f"Watching {watched_files} file(s)...")

        if not self.options.postpone:
            self._last_run = self._loop.time()
            self.request_run(RunRequest(self.options, None, "initial"))

        try:
            return await self._exit_future
        finally:
            self.detach()
            for task in self._tasks:
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        if self._exit_future is not None and self._exit_future.done():
            return RunState.TERMINATED
        if self.executor.is_running:
            return RunState.RUNNING
        return RunState.IDLE

    @property
    def exit_code(self) -> int | None:
        if self._exit_future is None or not self._exit_future.done():
            return None
        return self._exit_future.result()

    # ------------------------------------------------------------------
    # Run policy
    # ------------------------------------------------------------------

    def _on_signal(self, path: Path, is_new_entry: bool) -> None:
        """Handle one coalesced signal from the watch engine."""
        if self.state is RunState.TERMINATED:
            return

        if is_new_entry and self.options.directories:
            logger.debug(f"Directory altered: new entry {path}")
            self.executor.kill()
            self.shutdown(EXIT_DIRECTORY_ALTERED)
            return

        if self.executor.is_running and not (self.options.all_events or self.options.restart):
            logger.debug(f"Ignoring change on {path}: command still running")
            return

        now = self._loop.time()
        if self._last_run is not None and now - self._last_run < self.options.debounce_delay:
            logger.debug(f"Ignoring change on {path}: within debounce delay")
            return

        self._last_run = now
        self.request_run(RunRequest(self.options, path, "file"))

    def request_run(self, request: RunRequest) -> None:
        """Schedule a run on the attached loop (sync-safe)."""
        if self._loop is None:
            raise RuntimeError("Controller not attached to event loop. Call attach() first.")
        task = self._loop.create_task(self._execute(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, request: RunRequest) -> None:
        if self.on_run_started:
            self.on_run_started(request)
        try:
            exit_code = await self.executor.run(request)
        except Exception as e:
            logger.exception(f"Error running command ({request.describe()}): {e}")
            return
        if self.on_run_finished:
            self.on_run_finished(request, exit_code)

    def manual_run(self) -> None:
        """Unconditioned run, bypassing the running-child and debounce checks."""
        if self.state is RunState.TERMINATED:
            return
        logger.debug("Manual run requested")
        self.request_run(RunRequest(self.options, None, "manual"))
        self._last_run = self._loop.time()

    def quit(self) -> None:
        """Kill the current child and exit with 0."""
        logger.debug("Quit requested")
        self.shutdown(EXIT_OK)

    def _on_termination_signal(self, signum: signal.Signals) -> None:
        logger.debug(f"Received {signal.Signals(signum).name}, shutting down")
        self.shutdown(EXIT_OK)

    def shutdown(self, exit_code: int) -> None:
        """Kill the child, release watches and finish run() with ``exit_code``.

        The first requested exit code wins.
        """
        if self._exit_future is None:
            # Not attached: nothing is waiting for the code
            self.executor.kill()
            raise SystemExit(exit_code)
        if self._exit_future.done():
            return
        self._exit_future.set_result(exit_code)
        self.executor.kill()
        self.detach()
        logger.debug(f"Shutting down with exit code {exit_code}")

