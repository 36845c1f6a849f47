"""
Tests for the fixed-window rate limiter.
"""

import time

import pytest

from slotbooker.config import RateLimitsConfig
from slotbooker.domain.exceptions import RateLimitExceeded
from slotbooker.services.rate_limiter import PURGE_EVERY, FixedWindowRateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestFixedWindowRateLimiter:
    """Tests for FixedWindowRateLimiter."""

    def test_allows_up_to_limit_then_blocks(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)

        first = limiter.hit("1.2.3.4")
        second = limiter.hit("1.2.3.4")
        third = limiter.hit("1.2.3.4")

        assert first.allowed and first.remaining == 1
        assert second.allowed and second.remaining == 0
        assert not third.allowed
        assert third.retry_after == 60
        assert third.headers()["Retry-After"] == "60"

    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=clock)
        limiter.hit("k")

        clock.now += 60

        assert limiter.hit("k").allowed

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

        assert limiter.hit("a").allowed
        assert limiter.hit("b").allowed
        assert not limiter.hit("a").allowed

    def test_check_raises_with_retry_after(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=30, message="slow down", clock=clock)
        limiter.check("k")
        clock.now += 10

        with pytest.raises(RateLimitExceeded, match="slow down") as excinfo:
            limiter.check("k")

        assert excinfo.value.retry_after == 20

    def test_purge_and_reset(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=10, clock=clock)
        limiter.hit("old")
        clock.now += 11
        limiter.hit("new")

        assert limiter.purge_expired() == 1

        limiter.reset()
        assert limiter.hit("new").allowed

    def test_from_rule_uses_presets(self):
        limiter = FixedWindowRateLimiter.from_rule(RateLimitsConfig().auth)

        assert limiter.max_requests == 5
        assert limiter.window_seconds == 15 * 60

    def test_rejects_non_positive_settings(self):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(max_requests=0, window_seconds=60)

    def test_expired_windows_are_swept_while_hitting(self):
        """Many one-off clients must not accumulate forever."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=1, clock=clock)

        for n in range(1000):
            limiter.hit(f"client-{n}")
            clock.now += 2

        assert len(limiter) <= PURGE_EVERY

    def test_reset_header_is_an_epoch_timestamp(self):
        before = time.time()
        limiter = FixedWindowRateLimiter(max_requests=5, window_seconds=60)

        reset = int(limiter.hit("k").headers()["X-RateLimit-Reset"])

        assert before + 59 <= reset <= time.time() + 60
