"""Candidate file discovery: stdin listing, git listing, and target classification."""

import logging
import os
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from entr_engine.models import TargetKind, WatchTarget

logger = logging.getLogger(__name__)


def read_files_from_stdin(stream: TextIO) -> list[str]:
    """Read one path per line, skipping blank lines."""
    return [line.strip() for line in stream if line.strip()]


def _git_lines(args: list[str], cwd: Path | None) -> list[str]:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return [line for line in result.stdout.splitlines() if line.strip()]


def git_tracked_files(cwd: Path | None = None) -> list[str]:
    """Tracked plus untracked-but-not-ignored files of the git checkout.

    Returns:
        Deduplicated paths in git's order; empty when git is unavailable or
        ``cwd`` is not inside a repository.
    """
    try:
        tracked = _git_lines(["ls-files"], cwd)
        untracked = _git_lines(["ls-files", "-o", "--exclude-standard"], cwd)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"git listing unavailable: {e}")
        return []

    # dict keeps insertion order
    return list(dict.fromkeys([*tracked, *untracked]))


def collect_targets(candidates: Iterable[str], directories: bool = False) -> list[WatchTarget]:
    """Stat candidates and turn them into watch targets.

    Missing paths, and directories when directory mode is off, are warned
    about and dropped. In directory mode the parent of every file is watched
    too. A path never appears as both a file and a directory target.

    Args:
        candidates: Paths as given by the user
        directories: Whether directory watching (-d) is enabled

    Returns:
        Files first (input order), then directories
    """
    files: dict[Path, WatchTarget] = {}
    dirs: dict[Path, WatchTarget] = {}

    for candidate in candidates:
        path = Path(os.path.abspath(candidate))
        if path.is_dir():
            if not directories:
                logger.warning(f"{candidate} is a directory (use -d to watch directories)")
                continue
            dirs.setdefault(path, WatchTarget(path, TargetKind.DIRECTORY))
        elif path.exists():
            files.setdefault(path, WatchTarget(path, TargetKind.FILE))
        else:
            logger.warning(f"{candidate} does not exist")

    if directories:
        for path in files:
            dirs.setdefault(path.parent, WatchTarget(path.parent, TargetKind.DIRECTORY))

    return [*files.values(), *dirs.values()]
