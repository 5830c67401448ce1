"""Process executor: owns the lifecycle of the child command.

The executor holds the only reference to the live child. Everyone else
asks ``is_running`` or calls ``kill()``; nothing outside this module
replaces the child slot.
"""

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TextIO

from entr_engine.models import EXIT_FAILURE, PLACEHOLDER, Options, RunRequest
from entr_engine.notifier import EntrNotifier, NoOpNotifier

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\x1b[2J\x1b[H"
CLEAR_SCREEN_AND_SCROLLBACK = "\x1b[3J\x1b[2J\x1b[H"

DEFAULT_SHELL = "/bin/sh"
DEFAULT_PAGER = "/bin/cat"


def user_shell(environ: Mapping[str, str] | None = None) -> str:
    """The user's shell, falling back to /bin/sh."""
    environ = os.environ if environ is None else environ
    return environ.get("SHELL") or DEFAULT_SHELL


def child_environment(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for the child: inherited, with PAGER defaulting to /bin/cat."""
    env = dict(os.environ if environ is None else environ)
    if not env.get("PAGER"):
        env["PAGER"] = DEFAULT_PAGER
    return env


def substitute_placeholder(command: Sequence[str], options: Options, trigger: Path | None) -> list[str]:
    """Replace every ``/_`` argument with the absolute triggering path.

    Without a trigger (initial or manual runs) the first watched path is used.
    """
    argv = list(command)
    if PLACEHOLDER not in argv:
        return argv

    if trigger is not None:
        chosen = trigger
    elif options.files:
        chosen = options.files[0]
    else:
        chosen = Path("")
    replacement = os.path.abspath(chosen)
    logger.debug(f"Replacing {PLACEHOLDER} placeholder with: {replacement}")
    return [replacement if arg == PLACEHOLDER else arg for arg in argv]


def build_argv(options: Options, trigger: Path | None, environ: Mapping[str, str] | None = None) -> list[str]:
    """Final argument vector for one run, shell-wrapped in shell mode."""
    argv = substitute_placeholder(options.command, options, trigger)
    if options.shell:
        return [user_shell(environ), "-c", " ".join(argv)]
    return argv


def _normalize_exit_code(returncode: int) -> int:
    # Killed by a signal: report it the way shells do
    if returncode < 0:
        return 128 - returncode
    return returncode


def _default_exit(exit_code: int) -> None:
    raise SystemExit(exit_code)


class ProcessExecutor:
    """Spawns, restarts and kills the child command.

    At most one child is tracked at a time; in restart mode the previous
    child is terminated and reaped before the next one is spawned.
    """

    def __init__(
        self,
        notifier: EntrNotifier | None = None,
        on_exit: Callable[[int], None] | None = None,
        stdout: TextIO | None = None,
    ):
        """Initialize executor.

        Args:
            notifier: Where spawn failures are reported (defaults to NoOpNotifier)
            on_exit: Called with the child's exit code in exit-after-completion mode.
                Defaults to raising SystemExit.
            stdout: Stream for clear sequences and the shell summary (defaults to sys.stdout)
        """
        self.notifier = notifier or NoOpNotifier()
        self._on_exit = on_exit or _default_exit
        self._stdout = stdout
        self._process: asyncio.subprocess.Process | None = None
        self._spawn_lock = asyncio.Lock()

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    @property
    def is_running(self) -> bool:
        """Whether a child is currently alive."""
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def kill(self) -> None:
        """Send SIGTERM to the current child, if any. Errors are swallowed."""
        process = self._process
        if process is None or process.returncode is not None:
            logger.debug("No current process to kill")
            return
        logger.debug(f"Killing current process {process.pid}")
        try:
            process.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            logger.debug(f"Process {process.pid} already gone")

    def clear_screen(self, options: Options) -> None:
        if not options.clear:
            return
        if options.clear_twice:
            logger.debug("Clearing screen with full buffer clear")
            self.stdout.write(CLEAR_SCREEN_AND_SCROLLBACK)
        else:
            logger.debug("Clearing screen")
            self.stdout.write(CLEAR_SCREEN)
        self.stdout.flush()

    async def _stop_current(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        logger.debug(f"Terminating process {process.pid} before restart")
        try:
            process.send_signal(signal.SIGTERM)
            await process.wait()
        except Exception as e:
            logger.debug(f"Ignoring error while stopping process {process.pid}: {e}")
        if self._process is process:
            self._process = None

    async def _spawn(self, argv: list[str], options: Options) -> asyncio.subprocess.Process | None:
        stdin = subprocess.DEVNULL if options.non_interactive else None
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=stdin,
                stdout=None,
                stderr=None,
                env=child_environment(),
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start {argv[0] if argv else '<empty command>'}: {e}")
            self.notifier.error(f"Command failed: {e}")
            return None
        self._process = process
        logger.debug(f"Started process {process.pid}")
        return process

    async def run(self, request: RunRequest) -> int:
        """Run the utility once and return its exit code.

        Args:
            request: Options snapshot plus the triggering path, if any

        Returns:
            The child's exit code (1 when it could not be spawned or awaited)
        """
        options = request.options
        argv = build_argv(options, request.trigger)
        logger.debug(f"Executing command: {' '.join(argv)} ({request.describe()})")

        async with self._spawn_lock:
            if options.restart:
                await self._stop_current()
            self.clear_screen(options)
            process = await self._spawn(argv, options)

        exit_code = EXIT_FAILURE
        if process is not None:
            try:
                exit_code = _normalize_exit_code(await process.wait())
                logger.debug(f"Command exited with code: {exit_code}")
            except Exception as e:
                logger.error(f"Waiting for process {process.pid} failed: {e}")
                self.notifier.error(f"Command failed: {e}")
                exit_code = EXIT_FAILURE

        if options.shell and self.stdout.isatty():
            print(f"\n[{user_shell()}] exit: {exit_code}", file=self.stdout, flush=True)

        if options.exit_after:
            logger.debug(f"Exiting after command completion with code: {exit_code}")
            self._on_exit(exit_code)

        if process is not None and self._process is process:
            self._process = None
        return exit_code
