"""CLI entry point for pyentr: parse flags, collect files, run the watch loop."""

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import NoReturn

from entr_engine.config import find_config_file, load_timings
from entr_engine.errors import ConfigError
from entr_engine.models import EXIT_FAILURE, EXIT_OK, Options, TargetKind, Timings, WatchTarget
from entr_engine.notifier import StderrNotifier
from pyentr import __version__
from pyentr.controller import EntrController
from pyentr.files import collect_targets, git_tracked_files, read_files_from_stdin

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "PYENTR_DEBUG"

USAGE = "%(prog)s [-acdnprsz] utility [argument /_ ...]"


class _UsageParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        print(f"{self.prog}: {message}", file=sys.stderr)
        self.print_help(sys.stderr)
        self.exit(EXIT_FAILURE)


def build_parser() -> argparse.ArgumentParser:
    parser = _UsageParser(
        prog="pyentr",
        usage=USAGE,
        description="Run arbitrary commands when files change.",
        epilog="Examples:\n"
        "  ls *.py | pyentr pytest                 # Rerun tests on save\n"
        "  ls *.c | pyentr -c make                 # Clear the screen, then build\n"
        "  ls app.py | pyentr -r python /_         # Restart a server on change\n"
        "  pyentr -s 'make && ./run'               # Use the git listing, run in a shell",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-a", dest="all_events", action="store_true", help="Respond to all events while utility is running")
    parser.add_argument("-c", dest="clear", action="count", default=0, help="Clear screen before invoking utility (twice: also clear scrollback)")
    parser.add_argument("-d", dest="directories", action="count", default=0, help="Track directories and exit if new file is added (twice: include hidden files)")
    parser.add_argument("-n", dest="non_interactive", action="store_true", help="Run in non-interactive mode")
    parser.add_argument("-p", dest="postpone", action="store_true", help="Postpone first execution until file is modified")
    parser.add_argument("-r", dest="restart", action="store_true", help="Reload persistent child process")
    parser.add_argument("-s", dest="shell", action="store_true", help="Evaluate first argument using shell")
    parser.add_argument("-z", dest="exit_after", action="store_true", help="Exit after utility completes")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Utility and its arguments")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Unknown flags or a missing utility print usage and exit with status 1.

    Returns:
        Parsed arguments namespace
    """
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else list(argv))

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.error("No utility specified")
    args.command = command
    return args


def build_options(args: argparse.Namespace, targets: Sequence[WatchTarget], timings: Timings | None = None) -> Options:
    """Freeze parsed flags and discovered targets into Options."""
    files = tuple(t.path for t in targets if t.kind is TargetKind.FILE)
    if not files:
        files = tuple(t.path for t in targets)
    return Options(
        command=tuple(args.command),
        files=files,
        all_events=args.all_events,
        clear=args.clear > 0,
        clear_twice=args.clear > 1,
        directories=args.directories > 0,
        directories_twice=args.directories > 1,
        non_interactive=args.non_interactive,
        postpone=args.postpone,
        restart=args.restart,
        shell=args.shell,
        exit_after=args.exit_after,
        timings=timings or Timings(),
    )


def configure_logging() -> None:
    if os.environ.get(DEBUG_ENV_VAR):
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s [%(levelname)s] %(message)s",
            stream=sys.stderr,
        )
    else:
        logging.basicConfig(level=logging.WARNING, format="pyentr: %(message)s", stream=sys.stderr)


def _stdin_is_terminal() -> bool:
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def discover_candidates() -> list[str]:
    """Paths piped on stdin, or the git listing when stdin is a terminal."""
    if not _stdin_is_terminal():
        return read_files_from_stdin(sys.stdin)
    return git_tracked_files(Path.cwd())


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for pyentr CLI.

    Handles:
    - Argument parsing
    - Config file and candidate file discovery
    - Running the controller until it decides the exit code
    """
    args = parse_args(argv)
    configure_logging()
    notifier = StderrNotifier()

    try:
        timings = load_timings(find_config_file())
    except ConfigError as e:
        notifier.error(str(e))
        return EXIT_FAILURE

    candidates = discover_candidates()
    if not candidates:
        notifier.error("No files provided")
        return EXIT_FAILURE

    targets = collect_targets(candidates, directories=args.directories > 0)
    if not targets:
        notifier.error("No valid files to watch")
        return EXIT_FAILURE

    options = build_options(args, targets, timings)
    controller = EntrController(options, targets, notifier=notifier)

    try:
        return asyncio.run(controller.run())
    except KeyboardInterrupt:
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
