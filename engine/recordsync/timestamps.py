"""
AirTrack Sync — Timestamp decoding

The document store hands back timestamps in whatever shape its wire format
uses. Everything past the store client works with aware UTC datetimes, so
every raw document goes through decode_timestamp() first.

Accepted encodings:
  - datetime (naive values are taken as UTC)
  - {"seconds": int, "nanoseconds": int} and {"_seconds": ..., "_nanoseconds": ...}
  - ISO 8601 strings, with or without a trailing "Z"
  - epoch numbers: seconds, or milliseconds when larger than 1e11
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from typing import Any


class TimestampDecodeError(ValueError):
    """A raw value could not be read as an instant."""


_MILLIS_THRESHOLD = 1e11
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def encode_timestamp(value: datetime) -> dict[str, int]:
    """Encode a datetime the way the store's wire format carries it."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    delta = value - _EPOCH
    return {
        "_seconds": delta.days * 86400 + delta.seconds,
        "_nanoseconds": delta.microseconds * 1000,
    }


def decode_timestamp(value: Any) -> datetime | None:
    """
    Decode one raw timestamp value. None stays None (a missing timestamp is
    not an error; pending server timestamps arrive that way).

    Raises TimestampDecodeError for anything unreadable.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=UTC)

    if isinstance(value, bool):
        raise TimestampDecodeError(f"unsupported timestamp value {value!r}")

    if isinstance(value, int | float):
        seconds = value / 1000 if abs(value) > _MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise TimestampDecodeError(f"timestamp out of range: {value!r}") from e

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise TimestampDecodeError(f"unparseable timestamp string {value!r}") from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
        if isinstance(seconds, int) and not isinstance(seconds, bool) and isinstance(nanos, int):
            try:
                return _EPOCH + timedelta(seconds=seconds, microseconds=nanos // 1000)
            except OverflowError as e:
                raise TimestampDecodeError(f"timestamp out of range: {value!r}") from e
        raise TimestampDecodeError(f"malformed timestamp map {value!r}")

    raise TimestampDecodeError(f"unsupported timestamp value {value!r}")
