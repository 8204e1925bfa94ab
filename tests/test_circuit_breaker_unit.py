"""Unit tests for the circuit breaker."""

import threading

import pytest

from social2rss.circuit_breaker import CircuitBreaker, FetchOutcome


class TestCircuitBreakerUnit:
    """Unit tests for CircuitBreaker state transitions."""

    def test_trips_after_threshold_rate_limits(self):
        """Three consecutive rate limits block the fourth attempt."""
        breaker = CircuitBreaker(threshold=3)

        for _ in range(3):
            assert breaker.before_attempt() is True
            breaker.on_result(FetchOutcome.RATE_LIMITED)

        assert breaker.before_attempt() is False
        assert breaker.is_open

    def test_success_resets_counter(self):
        breaker = CircuitBreaker(threshold=3)
        breaker.on_result(FetchOutcome.RATE_LIMITED)
        breaker.on_result(FetchOutcome.RATE_LIMITED)

        breaker.on_result(FetchOutcome.SUCCESS)

        assert breaker.consecutive_failures == 0
        breaker.on_result(FetchOutcome.RATE_LIMITED)
        breaker.on_result(FetchOutcome.RATE_LIMITED)
        assert breaker.before_attempt() is True

    def test_other_failures_do_not_count(self):
        breaker = CircuitBreaker(threshold=2)
        breaker.on_result(FetchOutcome.RATE_LIMITED)

        breaker.on_result(FetchOutcome.OTHER_FAILURE)

        assert breaker.consecutive_failures == 1
        assert breaker.before_attempt() is True

    def test_stays_open_until_reset(self):
        breaker = CircuitBreaker(threshold=1)
        breaker.on_result(FetchOutcome.RATE_LIMITED)

        assert breaker.before_attempt() is False
        assert breaker.before_attempt() is False

        breaker.reset()
        assert breaker.before_attempt() is True

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker(threshold=0)

    def test_concurrent_increments_are_not_lost(self):
        """Outcomes reported from many threads are all counted."""
        breaker = CircuitBreaker(threshold=10_000)

        def report():
            for _ in range(100):
                breaker.on_result(FetchOutcome.RATE_LIMITED)

        threads = [threading.Thread(target=report) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert breaker.consecutive_failures == 800
