"""Tests for the fixed-window rate limiter."""

from unittest.mock import patch

import pytest

from services.rate_limiter import RateLimitConfig, RateLimiter, get_rate_limiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


CONFIG = RateLimitConfig(limit=5, window_seconds=60)


@pytest.fixture
def clock():
    """Freeze the clock the in-memory storage reads."""
    fake = FakeClock()
    with patch("limits.storage.memory.time.time", new=fake):
        yield fake


def test_allows_up_to_limit(clock):
    limiter = RateLimiter()

    results = [limiter.check("plaid-sync:user-1", CONFIG) for _ in range(6)]

    assert [r.allowed for r in results] == [True] * 5 + [False]
    assert results[0].remaining == 4
    assert results[4].remaining == 0
    assert results[5].remaining == 0
    assert results[5].reset_at == pytest.approx(1060.0)


def test_window_resets(clock):
    limiter = RateLimiter()
    for _ in range(5):
        limiter.check("k", CONFIG)

    clock.now += 61

    result = limiter.check("k", CONFIG)
    assert result.allowed is True
    assert result.remaining == 4


def test_keys_are_independent(clock):
    limiter = RateLimiter()
    for _ in range(5):
        limiter.check("plaid-sync:user-1", CONFIG)

    assert limiter.check("plaid-sync:user-2", CONFIG).allowed is True


def test_configs_are_independent(clock):
    limiter = RateLimiter()
    for _ in range(3):
        limiter.check("k", RateLimitConfig(limit=3, window_seconds=60))

    assert limiter.check("k", RateLimitConfig(limit=3, window_seconds=60)).allowed is False
    assert limiter.check("k", CONFIG).allowed is True


def test_reset_one_key(clock):
    limiter = RateLimiter()
    for _ in range(5):
        limiter.check("k", CONFIG)
        limiter.check("other", CONFIG)

    limiter.reset("k", CONFIG)

    assert limiter.check("k", CONFIG).allowed is True
    assert limiter.check("other", CONFIG).allowed is False


def test_reset_all(clock):
    limiter = RateLimiter()
    for _ in range(5):
        limiter.check("k", CONFIG)

    limiter.reset()

    assert limiter.check("k", CONFIG).allowed is True


def test_limiters_do_not_share_counters(clock):
    first = RateLimiter()
    for _ in range(5):
        first.check("k", CONFIG)

    assert RateLimiter().check("k", CONFIG).allowed is True


def test_shared_instance():
    assert get_rate_limiter() is get_rate_limiter()
