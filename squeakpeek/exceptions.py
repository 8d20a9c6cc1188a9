"""
Error types raised by the SqueakPeek detection core.

Configuration problems are reported when a config is constructed, signal
problems before any envelope is computed, and label file problems while
importing. Numeric corner cases (zero noise floor, no matches) are guarded
inside the algorithms and never raised.
"""


class SqueakPeekError(Exception):
    """Base class for all SqueakPeek errors."""


class InvalidConfig(SqueakPeekError, ValueError):
    """A detector parameter is out of range or has the wrong type."""


class DegenerateSignal(SqueakPeekError, ValueError):
    """The signal is empty, all-zero, or the ROI falls outside it."""


class MalformedLabelFile(SqueakPeekError, ValueError):
    """A label file violates the two-line-per-label layout."""


class IOFailure(SqueakPeekError, OSError):
    """A file could not be opened in the requested mode."""
