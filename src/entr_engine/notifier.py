"""Pluggable notification protocol for entr_engine.

User-facing status lines ("Watching 3 file(s)...", spawn failures) go
through a notifier so the engine stays quiet when embedded and the CLI
can still talk to the terminal.
"""

import logging
import sys
from typing import Protocol, TextIO

logger = logging.getLogger(__name__)


class EntrNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent notifier - default when the engine is embedded."""

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass


class LoggingNotifier:
    """Implementation using stdlib logging - for debugging/development."""

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warning(self, msg: str) -> None:
        logger.warning(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)


class StderrNotifier:
    """Writes messages to stderr, the way the command-line tool reports.

    stdout belongs to the child command, so nothing is written there.
    """

    def __init__(self, stream: TextIO | None = None, prog: str = "pyentr"):
        self.stream = stream
        self.prog = prog

    def _write(self, text: str) -> None:
        stream = self.stream or sys.stderr
        print(text, file=stream, flush=True)

    def info(self, msg: str) -> None:
        self._write(msg)

    def warning(self, msg: str) -> None:
        self._write(f"{self.prog}: warning: {msg}")

    def error(self, msg: str) -> None:
        self._write(f"{self.prog}: {msg}")
