"""
In-memory rate limiting for bulk CSV imports.

An import writes up to IMPORT_MAX_ROWS documents in one batch; each user
gets a small number of imports per window. State is per process.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import UTC, datetime, timedelta


class RateLimiter:
    """
    Simple in-memory rate limiter.

    Tracks request timestamps per key (user id) within a time window.
    """

    def __init__(self):
        self._requests: dict[str, list[datetime]] = defaultdict(list)

    def check_rate_limit(self, key: str, max_requests: int, window_minutes: int = 60) -> bool:
        """
        Record a request for key if it is under the limit.

        Returns:
            True if under the limit, False if limit exceeded
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(minutes=window_minutes)

        recent = [ts for ts in self._requests[key] if ts > cutoff]
        if len(recent) >= max_requests:
            self._requests[key] = recent
            return False

        recent.append(now)
        self._requests[key] = recent
        return True

    def cleanup_old_entries(self, max_age_hours: int = 2) -> int:
        """Drop entries older than max_age_hours. Returns how many keys were removed."""
        cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
        removed = 0
        for key in list(self._requests.keys()):
            self._requests[key] = [ts for ts in self._requests[key] if ts > cutoff]
            if not self._requests[key]:
                del self._requests[key]
                removed += 1
        return removed

    def reset(self) -> None:
        self._requests.clear()


# Global rate limiter instance
import_rate_limiter = RateLimiter()
