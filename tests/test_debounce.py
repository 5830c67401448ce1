"""Tests for per-path coalescing."""

import asyncio
from pathlib import Path

import pytest

from entr_engine.debounce import Coalescer


@pytest.mark.asyncio
async def test_burst_for_same_path_fires_once_with_latest_flag():
    calls = []
    coalescer = Coalescer(lambda path, is_new: calls.append((path, is_new)), window_ms=20)

    coalescer.notify(Path("/w/a.txt"))
    coalescer.notify(Path("/w/a.txt"))
    coalescer.notify(Path("/w/a.txt"), True)
    assert coalescer.pending == 1

    await asyncio.sleep(0.08)

    assert calls == [(Path("/w/a.txt"), True)]
    assert coalescer.pending == 0


@pytest.mark.asyncio
async def test_refresh_extends_the_window():
    calls = []
    coalescer = Coalescer(lambda path, is_new: calls.append(path), window_ms=40)

    coalescer.notify(Path("/w/a.txt"))
    await asyncio.sleep(0.025)
    coalescer.notify(Path("/w/a.txt"))
    await asyncio.sleep(0.025)

    # 50ms after the first signal, but only 25ms after the refresh
    assert calls == []

    await asyncio.sleep(0.05)
    assert calls == [Path("/w/a.txt")]


@pytest.mark.asyncio
async def test_different_paths_are_independent():
    calls = []
    coalescer = Coalescer(lambda path, is_new: calls.append(path), window_ms=10)

    coalescer.notify(Path("/w/a.txt"))
    coalescer.notify(Path("/w/b.txt"))
    await asyncio.sleep(0.05)

    assert sorted(calls) == [Path("/w/a.txt"), Path("/w/b.txt")]


@pytest.mark.asyncio
async def test_cleanup_cancels_without_firing():
    calls = []
    coalescer = Coalescer(lambda path, is_new: calls.append(path), window_ms=10)

    coalescer.notify(Path("/w/a.txt"))
    coalescer.cleanup()
    coalescer.cleanup()
    coalescer.notify(Path("/w/b.txt"))
    await asyncio.sleep(0.05)

    assert calls == []
    assert coalescer.pending == 0


@pytest.mark.asyncio
async def test_callback_error_is_logged_not_raised(caplog):
    def boom(path, is_new):
        raise RuntimeError("callback failed")

    coalescer = Coalescer(boom, window_ms=5)
    coalescer.notify(Path("/w/a.txt"))
    await asyncio.sleep(0.03)

    assert "callback failed" in caplog.text
