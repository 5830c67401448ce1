"""Keyboard handler for interactive control of the watch loop.

Keys are read from the controlling terminal in cbreak mode through the
event loop, so key presses are dispatched on the same thread as file
events:

- space: run the utility now
- q / Ctrl-C: kill the utility and quit
"""

import asyncio
import logging
import os
import termios
import tty
from collections.abc import Callable
from typing import BinaryIO

logger = logging.getLogger(__name__)

DEFAULT_BINDINGS = {
    " ": "run",
    "q": "quit",
    "\x03": "quit",
}

KEY_LABELS = {" ": "space", "\x03": "ctrl-c"}


def open_terminal(path: str = "/dev/tty") -> BinaryIO | None:
    """Open the controlling terminal for reading, or None if there is none."""
    try:
        terminal = open(path, "rb", buffering=0)
    except OSError as e:
        logger.debug(f"Cannot open {path}: {e}")
        return None
    if not terminal.isatty():
        terminal.close()
        return None
    return terminal


class KeyboardHandler:
    """Maps key presses to controller actions.

    Features:
    - Binding table key -> action name, shared with the help text
    - Sync callbacks that never raise into the event loop
    - Terminal mode saved on attach() and restored on detach()
    """

    def __init__(self, controller, bindings: dict[str, str] | None = None):
        """Initialize keyboard handler.

        Args:
            controller: EntrController instance
            bindings: Optional key -> action table (defaults to DEFAULT_BINDINGS)
        """
        self.controller = controller
        self.bindings = dict(DEFAULT_BINDINGS if bindings is None else bindings)
        self.callbacks: dict[str, Callable[[], None]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._terminal: BinaryIO | None = None
        self._fd: int | None = None
        self._saved_attrs: list | None = None

    def bind_all(self) -> dict[str, Callable[[], None]]:
        """Build the key -> callback table.

        Returns:
            Dict mapping key to a callback that runs the bound action
        """
        actions = {
            "run": self.controller.manual_run,
            "quit": self.controller.quit,
        }
        callbacks = {}
        for key, action in self.bindings.items():
            if action not in actions:
                logger.warning(f"Unknown action '{action}' bound to {key!r}")
                continue
            callbacks[key] = self._create_callback(action, actions[action])
        self.callbacks = callbacks
        return callbacks

    def _create_callback(self, action: str, target: Callable[[], None]) -> Callable[[], None]:
        def callback():
            try:
                target()
            except Exception as e:
                logger.error(f"Error executing {action}: {e}")

        return callback

    def handle_key(self, key: str) -> bool:
        """Dispatch one key. Returns True if the key was bound."""
        callback = self.callbacks.get(key)
        if callback is None:
            return False
        logger.debug(f"Key {KEY_LABELS.get(key, key)!r} -> {self.bindings[key]}")
        callback()
        return True

    def handle_input(self, data: bytes) -> None:
        for key in data.decode(errors="ignore"):
            self.handle_key(key)

    # ------------------------------------------------------------------
    # Terminal wiring
    # ------------------------------------------------------------------

    def attach(self, loop: asyncio.AbstractEventLoop, terminal: BinaryIO) -> None:
        """Put the terminal in cbreak mode and start reading keys.

        The handler takes ownership of ``terminal`` and closes it on detach().
        """
        fd = terminal.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._loop = loop
        self._terminal = terminal
        self._fd = fd
        loop.add_reader(fd, self._on_readable)
        logger.debug(f"Reading keys from fd {fd}")

    def _on_readable(self) -> None:
        try:
            data = os.read(self._fd, 32)
        except OSError as e:
            logger.debug(f"Terminal read failed: {e}")
            data = b""
        if not data:
            # EOF: stop listening but keep watching files
            self._loop.remove_reader(self._fd)
            return
        self.handle_input(data)

    def detach(self) -> None:
        """Stop reading keys and restore the terminal. Safe to call twice."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        if self._loop is not None:
            self._loop.remove_reader(fd)
        if self._saved_attrs is not None:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_attrs)
            except termios.error as e:
                logger.debug(f"Cannot restore terminal mode: {e}")
        if self._terminal is not None:
            self._terminal.close()
            self._terminal = None

    def get_binding_help(self) -> str:
        """Get formatted help text for keyboard bindings."""
        help_text = "Keyboard Shortcuts:\n"
        if not self.bindings:
            help_text += "  (none configured)\n"
            return help_text
        for key, action in self.bindings.items():
            help_text += f"  [{KEY_LABELS.get(key, key)}] → {action}\n"
        return help_text
