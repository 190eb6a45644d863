"""Tests for the token bucket rate limiter."""

from unittest.mock import patch

from party.server.rate_limit import TokenBucket


class TestTokenBucket:
    def test_burst_allows_up_to_capacity(self):
        bucket = TokenBucket(rate=1.0, burst=5)
        assert all(bucket.consume() for _ in range(5))

    def test_over_burst_rejected(self):
        bucket = TokenBucket(rate=1.0, burst=3)
        for _ in range(3):
            bucket.consume()
        assert bucket.consume() is False

    def test_refill_restores_tokens(self):
        """Tokens come back at the configured rate."""
        bucket = TokenBucket(rate=10.0, burst=5)
        for _ in range(5):
            bucket.consume()
        assert bucket.consume() is False

        with patch("party.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._updated_at + 0.5
            assert bucket.consume() is True

    def test_refill_capped_at_burst(self):
        bucket = TokenBucket(rate=10.0, burst=5)
        with patch("party.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = bucket._updated_at + 100.0
            assert all(bucket.consume() for _ in range(5))
            assert bucket.consume() is False
            assert bucket.tokens < 1
