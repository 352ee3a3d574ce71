"""
Tests for the import rate limiter.

Covers:
  - requests under the limit pass, the next one is refused
  - keys are independent
  - cleanup drops keys with only old entries
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from backend.middleware.rate_limit import RateLimiter


def test_limit_per_key():
    limiter = RateLimiter()

    assert limiter.check_rate_limit("user-1", 2)
    assert limiter.check_rate_limit("user-1", 2)
    assert not limiter.check_rate_limit("user-1", 2)
    assert limiter.check_rate_limit("user-2", 2)


def test_old_requests_fall_out_of_window():
    limiter = RateLimiter()
    limiter._requests["user-1"] = [datetime.now(UTC) - timedelta(hours=2)]

    assert limiter.check_rate_limit("user-1", 1)


def test_cleanup_old_entries():
    limiter = RateLimiter()
    limiter._requests["old"] = [datetime.now(UTC) - timedelta(hours=3)]
    limiter.check_rate_limit("fresh", 5)

    assert limiter.cleanup_old_entries(max_age_hours=2) == 1
    assert limiter.check_rate_limit("fresh", 2)
    assert not limiter.check_rate_limit("fresh", 2)
