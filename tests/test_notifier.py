"""Tests for the notifier implementations."""

import io
import logging

from entr_engine.notifier import LoggingNotifier, NoOpNotifier, StderrNotifier


def test_logging_notifier_maps_levels(caplog):
    notifier = LoggingNotifier()

    with caplog.at_level(logging.DEBUG, logger="entr_engine.notifier"):
        notifier.info("Watching 1 file(s)...")
        notifier.warning("missing.txt does not exist")
        notifier.error("No valid files to watch")

    assert [(r.levelno, r.getMessage()) for r in caplog.records] == [
        (logging.INFO, "Watching 1 file(s)..."),
        (logging.WARNING, "missing.txt does not exist"),
        (logging.ERROR, "No valid files to watch"),
    ]


def test_noop_notifier_is_silent(caplog, capsys):
    notifier = NoOpNotifier()

    with caplog.at_level(logging.DEBUG):
        notifier.info("a")
        notifier.warning("b")
        notifier.error("c")

    assert caplog.records == []
    assert capsys.readouterr() == ("", "")


def test_stderr_notifier_prefixes():
    stream = io.StringIO()
    notifier = StderrNotifier(stream, prog="pyentr")

    notifier.info("Watching 2 file(s)...")
    notifier.warning("dir is a directory (use -d to watch directories)")
    notifier.error("No files provided")

    assert stream.getvalue().splitlines() == [
        "Watching 2 file(s)...",
        "pyentr: warning: dir is a directory (use -d to watch directories)",
        "pyentr: No files provided",
    ]


def test_stderr_notifier_defaults_to_current_stderr(capsys):
    StderrNotifier().error("boom")

    assert capsys.readouterr().err == "pyentr: boom\n"
