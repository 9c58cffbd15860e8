"""
Errors raised by the analysis core. All derive from AnalysisError so callers can
catch the family; the router maps each kind to an HTTP status.
"""


class AnalysisError(Exception):
    """Base class for analysis failures."""


class InputError(AnalysisError):
    """No usable payload (no image, screen image or text), or a malformed data URI."""


class RateLimitedError(AnalysisError):
    """The remote service throttled the call. retry_after is in seconds when known."""

    def __init__(self, message: str = "Rate limited by analysis service", retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RemoteError(AnalysisError):
    """Non-2xx answer, malformed JSON or an empty result from the remote service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(AnalysisError):
    """Transport failure before a response was received."""


class TaskTimeoutError(AnalysisError):
    """A running task exceeded the scheduler's per-call timeout."""


class BacklogFullError(AnalysisError):
    """The admission queue backlog is at its configured cap."""


# Failures worth another attempt under a RetryPolicy
RETRYABLE_ERRORS = (RemoteError, NetworkError, TaskTimeoutError)
