"""
Fixed-window request limiter keyed by client identity.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict

from ..config import RateLimitRule
from ..domain.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

# Expired windows are swept from the hit path once every this many hits
PURGE_EVERY = 100


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one request against the limiter."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    def headers(self) -> Dict[str, str]:
        """Standard rate limit headers for an HTTP response."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class FixedWindowRateLimiter:
    """
    Counts requests per key inside fixed windows of ``window_seconds``.

    The limiter is an ordinary object owned by whoever constructs it; the
    counters live only as long as the instance. ``clock`` returns epoch
    seconds, so ``reset_at`` can go out as an ``X-RateLimit-Reset`` header;
    it is injectable so tests can move time forward.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        message: str = "Too many requests, please try again later",
        clock: Callable[[], float] = time.time,
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be greater than zero")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._hits_since_purge = 0

    @classmethod
    def from_rule(cls, rule: RateLimitRule, clock: Callable[[], float] = time.time) -> "FixedWindowRateLimiter":
        return cls(
            max_requests=rule.max_requests,
            window_seconds=rule.window_seconds,
            message=rule.message,
            clock=clock,
        )

    def hit(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and report whether it is allowed."""
        now = self._clock()

        self._hits_since_purge += 1
        if self._hits_since_purge >= PURGE_EVERY:
            self.purge_expired()

        window = self._windows.get(key)

        if window is None or now >= window.reset_at:
            window = _Window(count=1, reset_at=now + self.window_seconds)
            self._windows[key] = window
        else:
            window.count += 1

        allowed = window.count <= self.max_requests
        retry_after = 0 if allowed else max(1, math.ceil(window.reset_at - now))

        if not allowed:
            logger.warning("Rate limit exceeded for %s (%d/%d)", key, window.count, self.max_requests)

        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - window.count),
            reset_at=window.reset_at,
            retry_after=retry_after,
        )

    def check(self, key: str) -> RateLimitResult:
        """
        Count one request and raise when over budget.

        Raises:
            RateLimitExceeded: With the number of seconds until the window resets
        """
        result = self.hit(key)
        if not result.allowed:
            raise RateLimitExceeded(self.message, retry_after=result.retry_after)
        return result

    def purge_expired(self) -> int:
        """Drop finished windows; returns how many were removed."""
        now = self._clock()
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._hits_since_purge = 0
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()
        self._hits_since_purge = 0

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        return len(self._windows)
