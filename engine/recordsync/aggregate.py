"""
AirTrack Sync — Aggregation Engine

Pure grouping and counting over a record set for analytics displays.
Total over its input: missing or wrong-typed fields count as empty, and an
empty input gives [] or 0, never a division error.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from engine.recordsync.timestamps import TimestampDecodeError, decode_timestamp
from engine.recordsync.types import AggregateBucket, Record
from engine.recordsync.views import stringify

Selector = str | Callable[[Record], Any]

_SELECTOR_ERRORS = (TypeError, ValueError, KeyError, AttributeError, IndexError)
_FIRST_INT = re.compile(r"\d+")

# Casualty strings meaning "none"
_NONE_WORDS = {"tidak ada", "none", "nihil", "-"}


def _select(record: Record, selector: Selector) -> Any:
    if isinstance(selector, str):
        return record.get(selector)
    try:
        return selector(record)
    except _SELECTOR_ERRORS:
        return None


def percentage(part: float, whole: float) -> float:
    """part / whole * 100, or 0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return part / whole * 100


def _buckets(counts: Counter[str]) -> list[AggregateBucket]:
    total = sum(counts.values())
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [AggregateBucket(key=k, count=c, percentage=percentage(c, total)) for k, c in ordered]


def count_by(records: Iterable[Record], selector: Selector) -> list[AggregateBucket]:
    """
    Group by the selector's string value. Records with an empty value make no
    bucket. Percentages are of the non-empty count; order is count desc, key asc.
    """
    counts: Counter[str] = Counter()
    for r in records:
        key = stringify(_select(r, selector))
        if key:
            counts[key] += 1
    return _buckets(counts)


def count_by_multi_value(records: Iterable[Record], selector: Selector) -> list[AggregateBucket]:
    """
    Like count_by, for list-valued selectors: each list item counts once in its
    own bucket. The percentage base is the sum of bucket counts, not the
    number of records.
    """
    counts: Counter[str] = Counter()
    for r in records:
        values = _select(r, selector)
        if not isinstance(values, list | tuple | set):
            values = [values]
        for value in values:
            key = stringify(value)
            if key:
                counts[key] += 1
    return _buckets(counts)


def count_where(records: Iterable[Record], predicate: Callable[[Record], bool]) -> int:
    n = 0
    for r in records:
        try:
            if predicate(r):
                n += 1
        except _SELECTOR_ERRORS:
            continue
    return n


def parse_count(value: Any) -> int:
    """
    Read a count out of free text: the first integer in the string.
    "Ada (2 pilot)" → 2, "tidak ada" → 0, anything unreadable → 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text or text.lower() in _NONE_WORDS:
        return 0
    match = _FIRST_INT.search(text)
    return int(match.group(0)) if match else 0


def sum_numbers(records: Iterable[Record], selector: Selector) -> int:
    return sum(parse_count(_select(r, selector)) for r in records)


def top(buckets: Sequence[AggregateBucket], n: int) -> list[AggregateBucket]:
    return list(buckets[: max(0, n)])


# ---------------------------------------------------------------------------
# Selector helpers
# ---------------------------------------------------------------------------


def nested_values(list_field: str, key: str) -> Callable[[Record], list[Any]]:
    """Selector for `key` of every map in a list field, e.g. evaluations[].complianceStatus."""

    def select(record: Record) -> list[Any]:
        items = record.get(list_field)
        if not isinstance(items, list | tuple):
            return []
        return [item.get(key) for item in items if isinstance(item, dict)]

    return select


def year_of(field: str) -> Callable[[Record], int | None]:
    """Selector for the calendar year of a date-valued field, or None."""

    def select(record: Record) -> int | None:
        try:
            value = decode_timestamp(record.get(field))
        except TimestampDecodeError:
            return None
        return value.year if value else None

    return select
