"""Unit tests for the retry policy."""

from unittest.mock import Mock

import pytest

from social2rss.circuit_breaker import CircuitBreaker, FetchOutcome
from social2rss.errors import (
    CircuitBrokenError,
    FetchError,
    RateLimitedError,
    RetriesExhaustedError,
    UpstreamNotFoundError,
)
from social2rss.models import Profile, RawItem
from social2rss.normalize import ItemNormalizer
from social2rss.retry import RetryPolicy

PROFILE = Profile(id="acme", url="https://x.com/acme", name="Acme", platform="X")

GOOD_RAW = RawItem(
    title="Post", link="https://x.com/acme/status/1", pub_date="2024-05-01T10:00:00Z"
)


def make_policy(breaker=None, **kwargs):
    sleep = Mock()
    policy = RetryPolicy(
        breaker=breaker or CircuitBreaker(threshold=3),
        normalizer=ItemNormalizer(),
        primary_target="primary-model",
        fallback_target=kwargs.pop("fallback_target", "fallback-model"),
        max_retries=kwargs.pop("max_retries", 3),
        backoff_seconds=60,
        sleep=sleep,
    )
    return policy, sleep


class TestRetryPolicyUnit:
    """Unit tests for RetryPolicy.fetch_with_retry."""

    def test_success_on_first_attempt(self):
        policy, sleep = make_policy()
        fetch = Mock(return_value=[GOOD_RAW])

        result = policy.fetch_with_retry(PROFILE, fetch)

        assert result == [GOOD_RAW]
        fetch.assert_called_once_with(PROFILE, "primary-model")
        sleep.assert_not_called()

    def test_rate_limit_then_success_backs_off(self):
        breaker = CircuitBreaker(threshold=3)
        policy, sleep = make_policy(breaker)
        fetch = Mock(side_effect=[RateLimitedError("429"), [GOOD_RAW]])

        result = policy.fetch_with_retry(PROFILE, fetch)

        assert result == [GOOD_RAW]
        assert fetch.call_count == 2
        sleep.assert_called_once_with(60)
        assert breaker.consecutive_failures == 0

    def test_retries_exhausted(self):
        """Rate limits on every attempt raise RetriesExhaustedError."""
        breaker = CircuitBreaker(threshold=10)
        policy, sleep = make_policy(breaker, max_retries=3)
        fetch = Mock(side_effect=RateLimitedError("429"))

        with pytest.raises(RetriesExhaustedError):
            policy.fetch_with_retry(PROFILE, fetch)

        assert fetch.call_count == 3
        # No wait after the final attempt
        assert sleep.call_count == 2

    def test_breaker_trips_mid_retry(self):
        breaker = CircuitBreaker(threshold=2)
        policy, _ = make_policy(breaker, max_retries=5)
        fetch = Mock(side_effect=RateLimitedError("429"))

        with pytest.raises(CircuitBrokenError):
            policy.fetch_with_retry(PROFILE, fetch)

        assert fetch.call_count == 2
        assert breaker.is_open

    def test_open_breaker_blocks_without_calling(self):
        breaker = CircuitBreaker(threshold=1)
        breaker.on_result(FetchOutcome.RATE_LIMITED)
        policy, _ = make_policy(breaker)
        fetch = Mock()

        with pytest.raises(CircuitBrokenError):
            policy.fetch_with_retry(PROFILE, fetch)

        fetch.assert_not_called()

    def test_not_found_on_first_attempt_uses_fallback(self):
        policy, sleep = make_policy()
        fetch = Mock(side_effect=[UpstreamNotFoundError("404"), [GOOD_RAW]])

        result = policy.fetch_with_retry(PROFILE, fetch)

        assert result == [GOOD_RAW]
        assert [call.args[1] for call in fetch.call_args_list] == [
            "primary-model",
            "fallback-model",
        ]
        sleep.assert_not_called()

    def test_fallback_does_not_consume_an_attempt(self):
        breaker = CircuitBreaker(threshold=10)
        policy, _ = make_policy(breaker, max_retries=2)
        fetch = Mock(
            side_effect=[
                UpstreamNotFoundError("404"),
                RateLimitedError("429"),
                [GOOD_RAW],
            ]
        )

        assert policy.fetch_with_retry(PROFILE, fetch) == [GOOD_RAW]
        assert fetch.call_count == 3

    def test_not_found_after_fallback_propagates(self):
        policy, _ = make_policy()
        fetch = Mock(side_effect=UpstreamNotFoundError("404"))

        with pytest.raises(UpstreamNotFoundError):
            policy.fetch_with_retry(PROFILE, fetch)

        assert fetch.call_count == 2

    def test_not_found_without_fallback_propagates(self):
        policy, _ = make_policy(fallback_target=None)
        fetch = Mock(side_effect=UpstreamNotFoundError("404"))

        with pytest.raises(UpstreamNotFoundError):
            policy.fetch_with_retry(PROFILE, fetch)

        fetch.assert_called_once()

    def test_other_failure_is_not_retried(self):
        breaker = CircuitBreaker(threshold=3)
        breaker.on_result(FetchOutcome.RATE_LIMITED)
        policy, sleep = make_policy(breaker)
        fetch = Mock(side_effect=FetchError("boom"))

        with pytest.raises(FetchError):
            policy.fetch_with_retry(PROFILE, fetch)

        fetch.assert_called_once()
        sleep.assert_not_called()
        assert breaker.consecutive_failures == 1


class TestAttemptFetchUnit:
    """Unit tests for RetryPolicy.attempt_fetch."""

    def test_normalizes_and_drops_bad_items(self):
        policy, _ = make_policy()
        bad = RawItem(title="Broken", link="https://x.com/acme/2", pub_date="garbage")
        fetch = Mock(return_value=[GOOD_RAW, bad])

        items = policy.attempt_fetch(PROFILE, fetch)

        assert len(items) == 1
        assert items[0].guid == "https://x.com/acme/status/1"
        assert items[0].author == "Acme X Hesabı"

    def test_profile_failures_degrade_to_empty(self):
        policy, _ = make_policy()
        fetch = Mock(side_effect=FetchError("boom"))

        assert policy.attempt_fetch(PROFILE, fetch) == []

    def test_retries_exhausted_degrades_to_empty(self):
        policy, _ = make_policy(CircuitBreaker(threshold=10))
        fetch = Mock(side_effect=RateLimitedError("429"))

        assert policy.attempt_fetch(PROFILE, fetch) == []

    def test_circuit_broken_propagates(self):
        policy, _ = make_policy(CircuitBreaker(threshold=1))
        fetch = Mock(side_effect=RateLimitedError("429"))

        with pytest.raises(CircuitBrokenError):
            policy.attempt_fetch(PROFILE, fetch)
