"""Exception types for Social2RSS."""

from typing import Any

MISSING_REQUIRED_FIELD = "MissingRequiredField"
INVALID_DATE = "InvalidDate"


class NormalizationError(ValueError):
    """Raised when a raw item cannot be turned into a FeedItem."""

    def __init__(self, reason: str, message: str):
        super().__init__(f"{reason}: {message}")
        self.reason = reason


class FetchError(Exception):
    """Base class for failures of a single profile fetch."""


class RateLimitedError(FetchError):
    """Upstream quota exhausted (HTTP 429 class). Retryable."""


class UpstreamNotFoundError(FetchError):
    """Upstream target (model) not found or unavailable."""


class DiscoveryResponseError(FetchError):
    """Upstream answered but the payload could not be parsed."""


class RetriesExhaustedError(FetchError):
    """All retry attempts were rate limited."""


class CircuitBrokenError(FetchError):
    """The circuit breaker is open; no further fetches may be issued."""


class FeedStorageError(OSError):
    """Reading or writing the persisted feed failed.

    When raised after a merge, ``partial_result`` holds the unsaved result.
    """

    def __init__(self, message: str, partial_result: Any = None):
        super().__init__(message)
        self.partial_result = partial_result
