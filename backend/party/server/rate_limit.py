"""Token bucket rate limiter for WebSocket message throttling."""

import time


class TokenBucket:
    """Allow bursts up to a fixed capacity, refilled at a steady rate.

    consume() takes one token and returns False once the bucket is dry.
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._updated_at = time.monotonic()

    @property
    def tokens(self) -> float:
        return self._tokens

    def consume(self) -> bool:
        now = time.monotonic()
        self._tokens = min(self._burst, self._tokens + (now - self._updated_at) * self._rate)
        self._updated_at = now
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
