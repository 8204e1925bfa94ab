"""Retry policy for per-profile discovery fetches."""

import time
from collections.abc import Callable

from .circuit_breaker import CircuitBreaker, FetchOutcome
from .errors import (
    CircuitBrokenError,
    NormalizationError,
    RateLimitedError,
    RetriesExhaustedError,
    UpstreamNotFoundError,
)
from .logging_config import create_execution_logger
from .models import FeedItem, Profile, RawItem
from .normalize import ItemNormalizer

FetchFn = Callable[[Profile, str], list[RawItem]]


class RetryPolicy:
    """Bounded retries around a single profile fetch.

    Rate-limited attempts are retried after a fixed backoff and reported
    to the circuit breaker. A not-found upstream target on the first attempt
    is replaced once by the fallback target. Any other failure is final.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        normalizer: ItemNormalizer,
        primary_target: str,
        fallback_target: str | None = None,
        max_retries: int = 3,
        backoff_seconds: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
        execution_id: str | None = None,
    ):
        """Initialize the retry policy.

        Args:
            breaker: Circuit breaker shared by all fetches of the run
            normalizer: Normalizer applied to fetched raw items
            primary_target: Upstream target (model id) used first
            fallback_target: Target substituted once when the primary is not found
            max_retries: Total number of attempts per profile
            backoff_seconds: Wait between rate-limited attempts
            sleep: Sleep function, injectable for tests
            execution_id: Execution ID for logging context
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.breaker = breaker
        self.normalizer = normalizer
        self.primary_target = primary_target
        self.fallback_target = fallback_target
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep
        self.logger = create_execution_logger("retry", execution_id)

    def fetch_with_retry(self, profile: Profile, fetch_fn: FetchFn) -> list[RawItem]:
        """Fetch raw items for a profile.

        Raises:
            CircuitBrokenError: If the breaker is (or becomes) open
            RetriesExhaustedError: If every attempt was rate limited
            Exception: Any non-retryable failure raised by fetch_fn
        """
        target = self.primary_target
        fallback_used = False
        attempt = 0

        while attempt < self.max_retries:
            if not self.breaker.before_attempt():
                raise CircuitBrokenError(
                    f"Circuit open, skipping {profile.url}"
                )

            try:
                items = fetch_fn(profile, target)
            except RateLimitedError:
                self.breaker.on_result(FetchOutcome.RATE_LIMITED)
                attempt += 1
                if self.breaker.is_open:
                    self.logger.error(
                        "Circuit breaker tripped after consecutive rate limits",
                        profile_url=profile.url,
                        consecutive_failures=self.breaker.consecutive_failures,
                    )
                    raise CircuitBrokenError(
                        f"Circuit opened while fetching {profile.url}"
                    )
                if attempt < self.max_retries:
                    self.logger.warning(
                        f"Rate limited, waiting {self.backoff_seconds}s before "
                        f"retry {attempt + 1}/{self.max_retries}",
                        profile_url=profile.url,
                        backoff_time=self.backoff_seconds,
                    )
                    self.sleep(self.backoff_seconds)
                continue
            except UpstreamNotFoundError:
                if attempt == 0 and not fallback_used and self.fallback_target:
                    self.logger.warning(
                        f"Target {target} not found, falling back to {self.fallback_target}",
                        profile_url=profile.url,
                    )
                    target = self.fallback_target
                    fallback_used = True
                    continue
                self.breaker.on_result(FetchOutcome.OTHER_FAILURE)
                raise
            except Exception:
                self.breaker.on_result(FetchOutcome.OTHER_FAILURE)
                raise

            self.breaker.on_result(FetchOutcome.SUCCESS)
            return items

        raise RetriesExhaustedError(
            f"Max retries ({self.max_retries}) exceeded for {profile.url}"
        )

    def attempt_fetch(self, profile: Profile, fetch_fn: FetchFn) -> list[FeedItem]:
        """Fetch and normalize items for a profile, degrading to [] on failure.

        Only CircuitBrokenError propagates so the caller can stop scheduling.
        """
        try:
            raw_items = self.fetch_with_retry(profile, fetch_fn)
        except CircuitBrokenError:
            raise
        except Exception as e:
            self.logger.error(
                f"Failed to fetch profile {profile.name}: {e}",
                profile_url=profile.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        items = []
        for raw in raw_items:
            try:
                items.append(self.normalizer.normalize(raw, profile))
            except NormalizationError as e:
                self.logger.log_item_rejected(raw.title or "", str(e))
                continue

        self.logger.log_profile_processing(profile.url, len(items))
        return items
