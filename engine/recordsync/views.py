"""
AirTrack Sync — Derived View Engine

Pure function: (records, edits, filter state, sort, page, page size) → DerivedView
No side effects. No IO. Deterministic for unchanged input.

Pipeline:
  1. merge_overlay   — optimistic edits win over server fields; deletes hide
  2. filter          — every active filter ANDed together
  3. sort            — stable; None values last; tie-break by id ascending
  4. paginate        — page clamped into range; page_count is at least 1

Nothing in here raises on malformed record data. Absent or wrong-typed
fields simply fail to match a filter and sort after present values.
"""

from __future__ import annotations

import functools
import math
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal

from engine.recordsync.types import (
    CREATE,
    DELETE,
    DerivedView,
    Direction,
    OptimisticEdit,
    OrderSpec,
    Record,
)

# Filter value meaning "no filter" for select-style filters
ALL = "all"

FilterKind = Literal["equals", "any_of", "derived", "text"]

# ---------------------------------------------------------------------------
# Stringification
# ---------------------------------------------------------------------------


def stringify(value: Any) -> str:
    """
    Render a field value as text for searching, grouping and CSV export.

    Lists join their items with "," and maps join their values with " ".
    None renders as the empty string.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, list | tuple):
        return ",".join(stringify(v) for v in value)
    if isinstance(value, dict):
        return " ".join(stringify(v) for v in value.values())
    return str(value)


def _leaf_values(value: Any) -> Iterator[Any]:
    if isinstance(value, list | tuple):
        for v in value:
            yield from _leaf_values(v)
    elif isinstance(value, dict):
        for v in value.values():
            yield from _leaf_values(v)
    else:
        yield value


def search_values(record: Record) -> Iterator[str]:
    """Every value a free-text search looks at, stringified: id, fields, nested items, timestamps."""
    yield record.id
    for value in record.fields.values():
        yield stringify(value)
        if isinstance(value, list | tuple | dict):
            for leaf in _leaf_values(value):
                yield stringify(leaf)
    if record.created_at is not None:
        yield stringify(record.created_at)
    if record.updated_at is not None:
        yield stringify(record.updated_at)


def matches_text(record: Record, needle: str) -> bool:
    """True if the lowercase needle occurs in any stringified value of the record."""
    lowered = needle.lower()
    return any(lowered in value.lower() for value in search_values(record))


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterDef:
    """
    One filter a page offers.

    equals  — stringified field value equals the selected value
    any_of  — the selected value appears in a list field (or in `key` of a list of maps)
    derived — stringified selector(record) equals the selected value
    text    — free-text substring search across every field
    """

    name: str
    kind: FilterKind
    field: str | None = None
    key: str | None = None
    selector: Callable[[Record], Any] | None = None

    @property
    def default(self) -> str:
        return "" if self.kind == "text" else ALL

    def is_active(self, value: Any) -> bool:
        if value is None:
            return False
        if self.kind == "text":
            return value != ""
        return value != ALL

    def matches(self, record: Record, value: Any) -> bool:
        if not self.is_active(value):
            return True
        if self.kind == "text":
            return matches_text(record, stringify(value))
        if self.kind == "any_of":
            return stringify(value) in _list_values(record.get(self.field or self.name), self.key)
        if self.kind == "derived":
            try:
                selected = self.selector(record) if self.selector else None
            except (TypeError, ValueError, KeyError, AttributeError):
                return False
            return selected is not None and stringify(selected) == stringify(value)
        return stringify(record.get(self.field or self.name)) == stringify(value)


def _list_values(raw: Any, key: str | None) -> list[str]:
    if not isinstance(raw, list | tuple):
        return []
    values: list[str] = []
    for item in raw:
        if key is None:
            values.append(stringify(item))
        elif isinstance(item, dict) and item.get(key) is not None:
            values.append(stringify(item[key]))
    return values


def equals(name: str, field: str | None = None) -> FilterDef:
    return FilterDef(name=name, kind="equals", field=field or name)


def any_of(name: str, field: str, key: str | None = None) -> FilterDef:
    return FilterDef(name=name, kind="any_of", field=field, key=key)


def derived(name: str, selector: Callable[[Record], Any]) -> FilterDef:
    return FilterDef(name=name, kind="derived", selector=selector)


def text(name: str = "text") -> FilterDef:
    return FilterDef(name=name, kind="text")


class FilterState:
    """
    Currently selected filter values for one page.
    Created with defaults, changed by set(), cleared by reset().
    """

    def __init__(self, filters: Sequence[FilterDef], values: Mapping[str, Any] | None = None) -> None:
        self._defs = {f.name: f for f in filters}
        self._values: dict[str, Any] = {f.name: f.default for f in filters}
        for name, value in (values or {}).items():
            self.set(name, value)

    @property
    def definitions(self) -> tuple[FilterDef, ...]:
        return tuple(self._defs.values())

    def get(self, name: str) -> Any:
        return self._values[name]

    def set(self, name: str, value: Any) -> None:
        if name not in self._defs:
            raise KeyError(f"unknown filter: {name}")
        self._values[name] = self._defs[name].default if value is None else value

    def reset(self) -> None:
        self._values = {name: f.default for name, f in self._defs.items()}

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def active(self) -> dict[str, Any]:
        return {name: v for name, v in self._values.items() if self._defs[name].is_active(v)}


def build_predicate(filters: Sequence[FilterDef], state: FilterState | Mapping[str, Any]) -> Callable[[Record], bool]:
    """AND of every active filter. Inactive filters match everything."""
    values = state.values() if isinstance(state, FilterState) else dict(state)
    active = [(f, values.get(f.name)) for f in filters if f.is_active(values.get(f.name))]

    def predicate(record: Record) -> bool:
        return all(f.matches(record, value) for f, value in active)

    return predicate


def apply_filter(
    records: Iterable[Record],
    filters: Sequence[FilterDef],
    state: FilterState | Mapping[str, Any],
) -> list[Record]:
    predicate = build_predicate(filters, state)
    return [r for r in records if predicate(r)]


def filter_options(records: Iterable[Record], field: str, key: str | None = None) -> list[str]:
    """Dropdown options for a select filter: ALL followed by sorted distinct non-empty values."""
    seen: set[str] = set()
    for r in records:
        raw = r.get(field)
        if isinstance(raw, list | tuple):
            values = _list_values(raw, key)
        elif key is None:
            values = [stringify(raw)]
        else:
            continue
        seen.update(v for v in values if v)
    return [ALL, *sorted(seen)]


# ---------------------------------------------------------------------------
# Sort
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SortSpec:
    column: str
    direction: Direction = "asc"


def toggle_sort(current: SortSpec | None, column: str) -> SortSpec:
    """Clicking a column header: flip direction on the same column, ascending on a new one."""
    if current is not None and current.column == column:
        return SortSpec(column, "desc" if current.direction == "asc" else "asc")
    return SortSpec(column, "asc")


def _type_rank(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, int | float):
        return 0
    if isinstance(value, datetime):
        return 2
    if isinstance(value, str):
        return 3
    return 4


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def compare_values(a: Any, b: Any) -> int:
    """Total order over field values: strings case-insensitively, mixed types by rank."""
    ra, rb = _type_rank(a), _type_rank(b)
    if ra != rb:
        return _cmp(ra, rb)
    if ra == 3:
        return _cmp(a.casefold(), b.casefold()) or _cmp(a, b)
    if ra in (0, 1, 2):
        return _cmp(a, b)
    return _cmp(stringify(a), stringify(b))


def sort_records(records: Iterable[Record], sort: SortSpec | OrderSpec | None) -> list[Record]:
    """
    Stable sort by one column. None values sort last in either direction.
    Ties break on id ascending so pagination is deterministic.
    """
    items = list(records)
    if sort is None:
        return items
    column = sort.column if isinstance(sort, SortSpec) else sort.field
    descending = sort.direction == "desc"

    def compare(a: Record, b: Record) -> int:
        av, bv = a.get(column), b.get(column)
        if av is None or bv is None:
            if av is None and bv is None:
                return _cmp(a.id, b.id)
            return 1 if av is None else -1
        c = compare_values(av, bv)
        if c != 0:
            return -c if descending else c
        return _cmp(a.id, b.id)

    items.sort(key=functools.cmp_to_key(compare))
    return items


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def page_count_for(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / max(1, page_size)))


def paginate(records: Sequence[Record], page: int, page_size: int) -> tuple[tuple[Record, ...], int, int]:
    """Slice one page. Returns (page records, clamped page, page_count)."""
    size = max(1, page_size)
    count = page_count_for(len(records), size)
    clamped = min(max(0, page), count - 1)
    start = clamped * size
    return tuple(records[start : start + size]), clamped, count


# ---------------------------------------------------------------------------
# Optimistic overlay
# ---------------------------------------------------------------------------


def _edit_values(edits: Mapping[str, OptimisticEdit] | Iterable[OptimisticEdit] | None) -> list[OptimisticEdit]:
    if edits is None:
        return []
    if isinstance(edits, Mapping):
        return list(edits.values())
    return list(edits)


def merge_overlay(
    records: Iterable[Record],
    edits: Mapping[str, OptimisticEdit] | Iterable[OptimisticEdit] | None,
) -> list[Record]:
    """
    Merge server records with pending edits.

    create/update payloads win over server fields; delete hides the record.
    A create or update whose id is not in the server set is shown from its
    payload alone, so a slow push does not hide the user's change.
    """
    by_id = {e.record_id: e for e in _edit_values(edits)}
    merged: list[Record] = []
    seen: set[str] = set()

    for record in records:
        seen.add(record.id)
        edit = by_id.get(record.id)
        if edit is None:
            merged.append(record)
        elif edit.kind == DELETE:
            continue
        else:
            merged.append(record.with_fields(edit.payload))

    for edit in by_id.values():
        if edit.record_id in seen or edit.kind == DELETE:
            continue
        merged.append(
            Record(
                id=edit.record_id,
                fields=dict(edit.payload),
                created_at=edit.submitted_at if edit.kind == CREATE else None,
                updated_at=edit.submitted_at,
            )
        )
    return merged


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def derive_view(
    records: Iterable[Record],
    edits: Mapping[str, OptimisticEdit] | Iterable[OptimisticEdit] | None,
    state: FilterState | Mapping[str, Any],
    filters: Sequence[FilterDef],
    sort: SortSpec | OrderSpec | None,
    page: int = 0,
    page_size: int = 10,
) -> DerivedView:
    merged = merge_overlay(records, edits)
    visible = apply_filter(merged, filters, state)
    ordered = sort_records(visible, sort)
    page_records, clamped, count = paginate(ordered, page, page_size)
    return DerivedView(
        visible_records=page_records,
        total_count=len(ordered),
        page=clamped,
        page_count=count,
    )


class ViewState:
    """
    A page's view selection: filters, sort, page and page size.
    Changing the sort or a filter returns to the first page.
    """

    def __init__(
        self,
        filters: Sequence[FilterDef],
        sort: SortSpec | None = None,
        page_size: int = 10,
    ) -> None:
        self.filters = FilterState(filters)
        self.sort = sort
        self.page = 0
        self.page_size = max(1, page_size)

    def set_sort(self, column: str, direction: Direction | None = None) -> SortSpec:
        self.sort = SortSpec(column, direction) if direction else toggle_sort(self.sort, column)
        self.page = 0
        return self.sort

    def set_filter(self, name: str, value: Any) -> None:
        self.filters.set(name, value)
        self.page = 0

    def reset_filters(self) -> None:
        self.filters.reset()
        self.page = 0

    def set_page(self, page: int) -> None:
        self.page = max(0, page)

    def derive(
        self,
        records: Iterable[Record],
        edits: Mapping[str, OptimisticEdit] | Iterable[OptimisticEdit] | None = None,
    ) -> DerivedView:
        return derive_view(
            records,
            edits,
            self.filters,
            self.filters.definitions,
            self.sort,
            self.page,
            self.page_size,
        )
