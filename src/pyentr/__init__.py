"""pyentr: run arbitrary commands when files change."""

__version__ = "0.1.0"

# Public API
from pyentr.controller import EntrController, RunState

__all__ = [
    "__version__",
    "EntrController",
    "RunState",
]
