# trimmer/errors.py
# Failures surfaced by the trimming session. None of these are retried.


class TrimmerError(Exception):
    """Base class for trimmer failures."""


class SourceUnavailableError(TrimmerError):
    """The source could not be opened or decoded. Raised before processing starts."""


class ReadFailureError(TrimmerError):
    """A read failed mid-stream. Fatal to the current session."""
