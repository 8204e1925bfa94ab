"""Circuit breaker guarding upstream discovery calls."""

import threading
from enum import Enum


class FetchOutcome(Enum):
    """Classified outcome of a single fetch attempt."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    OTHER_FAILURE = "other_failure"


class CircuitBreaker:
    """Trips after a run of consecutive rate-limit failures.

    Once open it stays open until reset() is called; a new sync run
    should use a new breaker. Safe to share between worker threads.
    """

    def __init__(self, threshold: int = 3):
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self.threshold = threshold
        self._consecutive_failures = 0
        self._lock = threading.Lock()

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def is_open(self) -> bool:
        """True when further attempts are blocked."""
        return self.consecutive_failures >= self.threshold

    def before_attempt(self) -> bool:
        """Return True if an attempt may proceed, False if blocked."""
        return not self.is_open

    def on_result(self, outcome: FetchOutcome) -> None:
        """Apply the state transition for an attempt outcome."""
        with self._lock:
            if outcome is FetchOutcome.SUCCESS:
                self._consecutive_failures = 0
            elif outcome is FetchOutcome.RATE_LIMITED:
                self._consecutive_failures += 1

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
