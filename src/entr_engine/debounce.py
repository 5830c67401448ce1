"""Per-path coalescing of change signals."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

SignalCallback = Callable[[Path, bool], None]


class Coalescer:
    """Collapse bursts of signals for the same path into one callback.

    Each path owns at most one pending ``TimerHandle``; a new signal for the
    path cancels it and schedules a fresh one, so the callback fires once per
    burst with the latest ``(path, is_new_entry)``.
    """

    def __init__(
        self,
        callback: SignalCallback,
        window_ms: int = 50,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initialize coalescer.

        Args:
            callback: Called as ``callback(path, is_new_entry)`` once the window elapses
            window_ms: Quiet window in milliseconds
            loop: Event loop for timers (defaults to the running loop on first use)
        """
        self.callback = callback
        self.window = window_ms / 1000.0
        self._loop = loop
        self._pending: dict[Path, asyncio.TimerHandle] = {}
        self._closed = False

    def notify(self, path: Path, is_new_entry: bool = False) -> None:
        """Record or refresh the pending timer for ``path``."""
        if self._closed:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        # Cancel existing timer
        previous = self._pending.pop(path, None)
        if previous is not None:
            previous.cancel()

        self._pending[path] = self._loop.call_later(self.window, self._fire, path, is_new_entry)

    def _fire(self, path: Path, is_new_entry: bool) -> None:
        self._pending.pop(path, None)
        logger.debug(f"Coalesced signal for {path} (new entry: {is_new_entry})")
        try:
            self.callback(path, is_new_entry)
        except Exception as e:
            logger.exception(f"Error in coalesced callback for {path}: {e}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    def cleanup(self) -> None:
        """Cancel all pending timers without firing them."""
        self._closed = True
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
