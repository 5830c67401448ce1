"""entr_engine: watch engine, coalescer and process executor behind pyentr."""

__version__ = "0.1.0"

from entr_engine.config import find_config_file, load_timings
from entr_engine.debounce import Coalescer
from entr_engine.errors import ConfigError, EntrError
from entr_engine.executor import ProcessExecutor, build_argv
from entr_engine.models import (
    EXIT_DIRECTORY_ALTERED,
    EXIT_FAILURE,
    EXIT_OK,
    PLACEHOLDER,
    Options,
    RunRequest,
    TargetKind,
    Timings,
    WatchTarget,
)
from entr_engine.notifier import EntrNotifier, LoggingNotifier, NoOpNotifier, StderrNotifier
from entr_engine.watch_engine import FileWatchState, WatchEngine, WatchHandle
from entr_engine.watchers import NotificationSource, RawEvent, Subscription

__all__ = [
    "__version__",
    # Models
    "Options",
    "RunRequest",
    "TargetKind",
    "Timings",
    "WatchTarget",
    "PLACEHOLDER",
    "EXIT_OK",
    "EXIT_FAILURE",
    "EXIT_DIRECTORY_ALTERED",
    # Config / errors
    "find_config_file",
    "load_timings",
    "ConfigError",
    "EntrError",
    # Engine
    "WatchEngine",
    "WatchHandle",
    "FileWatchState",
    "NotificationSource",
    "RawEvent",
    "Subscription",
    "Coalescer",
    "ProcessExecutor",
    "build_argv",
    # Notifiers
    "EntrNotifier",
    "LoggingNotifier",
    "NoOpNotifier",
    "StderrNotifier",
]
