"""Configuration loading for pyentr.

Timing windows default to the values in :class:`Timings` and may be tuned
through an optional TOML file::

    [timing]
    coalesce_ms = 50
    debounce_ms = 100
    poll_interval_ms = 50
    poll_window_ms = 2000
"""

import logging
import os
import tomllib
from dataclasses import fields, replace
from pathlib import Path

from entr_engine.errors import ConfigError
from entr_engine.models import Timings

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PYENTR_CONFIG"
DEFAULT_CONFIG_NAME = ".pyentr.toml"


def find_config_file(cwd: Path | None = None) -> Path | None:
    """Locate the config file, if any.

    ``$PYENTR_CONFIG`` wins; otherwise ``.pyentr.toml`` in the working
    directory is used when it exists.

    Args:
        cwd: Directory to look in (defaults to the current directory)

    Returns:
        Path to the config file, or None
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    candidate = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return candidate
    return None


def load_timings(path: str | Path | None) -> Timings:
    """Load timing overrides from a TOML file.

    Args:
        path: Path to TOML config file, or None for defaults

    Returns:
        Timings with any overrides applied

    Raises:
        ConfigError: If the file is missing, unparseable, or holds bad values
    """
    if path is None:
        return Timings()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    timing_raw = raw.get("timing", {})
    if not isinstance(timing_raw, dict):
        raise ConfigError(f"[timing] in {path} must be a table")

    known = {f.name for f in fields(Timings)}
    overrides: dict[str, int] = {}
    for key, value in timing_raw.items():
        if key not in known:
            logger.warning(f"Ignoring unknown timing key '{key}' in {path}")
            continue
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f"timing.{key} in {path} must be a non-negative integer, got {value!r}")
        overrides[key] = value

    if overrides.get("queue_size") == 0:
        raise ConfigError(f"timing.queue_size in {path} must be positive")

    timings = replace(Timings(), **overrides)
    logger.debug(f"Loaded timings from {path}: {timings}")
    return timings
