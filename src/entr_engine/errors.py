"""Exception types shared by the engine and its frontends."""


class EntrError(Exception):
    """Base class for pyentr errors."""


class ConfigError(EntrError):
    """Invalid configuration: bad config file, empty command, or no files to watch."""
