"""
Rate Limiter Service - Protects webhooks and the API against floods.

Sliding window per identifier, kept in memory. Identifiers are built by
callers, e.g. ``webhook:notion:<workspace>`` or ``api:<ip>:/path``.
"""

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, Optional, Deque

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for a rate limit."""
    max_requests: int     # Max requests in window
    window_seconds: int   # Window size in seconds


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float  # unix seconds when the oldest request leaves the window
    limit: int = 0

    @property
    def retry_after(self) -> int:
        return max(0, int(round(self.reset_time - time.time())))


RATE_LIMITS: Dict[str, RateLimitConfig] = {
    "WEBHOOK": RateLimitConfig(max_requests=100, window_seconds=60),
    "API": RateLimitConfig(max_requests=60, window_seconds=60),
    "AUTH": RateLimitConfig(max_requests=5, window_seconds=15 * 60),
    "READ": RateLimitConfig(max_requests=300, window_seconds=60),
    "WRITE": RateLimitConfig(max_requests=30, window_seconds=60),
    "NOTION_WEBHOOK": RateLimitConfig(max_requests=60, window_seconds=60),
}


class RateLimiter:
    """In-memory sliding window rate limiter."""

    def __init__(self, clock=time.time):
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._clock = clock

    def check_rate_limit(self, identifier: str, config: RateLimitConfig, consume: bool = True) -> RateLimitResult:
        """Check (and by default record) a request for ``identifier``."""
        now = self._clock()
        timestamps = self._requests[identifier]

        cutoff = now - config.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

        if len(timestamps) >= config.max_requests:
            logger.warning(f"Rate limit exceeded for {identifier}")
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=timestamps[0] + config.window_seconds,
                limit=config.max_requests,
            )

        if consume:
            timestamps.append(now)

        reset_time = (timestamps[0] if timestamps else now) + config.window_seconds
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests - len(timestamps),
            reset_time=reset_time,
            limit=config.max_requests,
        )

    def cleanup_expired(self, max_window_seconds: int = 15 * 60) -> int:
        """Drop identifiers with no request in the longest window. Returns how many were dropped."""
        cutoff = self._clock() - max_window_seconds
        stale = [key for key, ts in self._requests.items() if not ts or ts[-1] <= cutoff]
        for key in stale:
            del self._requests[key]
        if stale:
            logger.debug(f"Cleaned up {len(stale)} idle rate limit keys")
        return len(stale)

    def reset(self, identifier: Optional[str] = None) -> None:
        if identifier is None:
            self._requests.clear()
        else:
            self._requests.pop(identifier, None)

    def get_stats(self) -> Dict[str, int]:
        return {
            "active_keys": len(self._requests),
            "total_tracked_requests": sum(len(ts) for ts in self._requests.values()),
        }


# Singleton
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the rate limiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def check_rate_limit(identifier: str, config: RateLimitConfig) -> RateLimitResult:
    """Module-level shortcut over the singleton."""
    return get_rate_limiter().check_rate_limit(identifier, config)

