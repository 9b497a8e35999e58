"""Fixed-window rate limiting backed by the ``limits`` package.

Counters live in ``MemoryStorage``, so limits are per worker process.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Allow ``limit`` requests per ``window_seconds``."""

    limit: int
    window_seconds: int

    def to_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.limit, self.window_seconds)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds at which the current window ends


class RateLimiter:
    """Fixed-window counters keyed by an arbitrary string."""

    def __init__(self, storage: Optional[Storage] = None):
        self._storage = storage or MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request against ``key`` and report whether it may proceed."""
        item = config.to_item()
        allowed = self._limiter.hit(item, key)
        reset_at, remaining = self._limiter.get_window_stats(item, key)
        if not allowed:
            logger.debug("Rate limit %s exceeded for %s", item, key)
        return RateLimitResult(allowed=allowed, remaining=remaining, reset_at=reset_at)

    def reset(self, key: Optional[str] = None, config: Optional[RateLimitConfig] = None) -> None:
        """Forget the counter for ``key`` under ``config``, or all counters."""
        if key is None or config is None:
            self._storage.reset()
        else:
            self._limiter.clear(config.to_item(), key)


_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = RateLimiter()
    return _rate_limiter
