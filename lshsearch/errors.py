"""
Exceptions raised by lshsearch.

Configuration and validation failures subclass ValueError so callers that
already guard index calls with ``except ValueError`` keep working.
"""


class LSHSearchError(Exception):
    """Base class for all lshsearch errors."""


class ConfigurationError(LSHSearchError, ValueError):
    """Invalid index configuration, or the engine refused to build a table."""


class ValidationError(LSHSearchError, ValueError):
    """A query or tuning input does not fit the index it is used with."""


class TuningError(LSHSearchError, RuntimeError):
    """Probe tuning did not reach the target precision within its iteration cap."""


class IndexClosedError(LSHSearchError, RuntimeError):
    """The index was used after close() released its table."""
