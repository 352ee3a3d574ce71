"""
AirTrack Sync -- Property and Scenario Tests

Properties (hypothesis):
  - reconcile is idempotent
  - visibility is the conjunction of active filters; clearing a filter never shrinks the view
  - concatenated pages reproduce the filtered, sorted set exactly
  - count_by totals match the non-empty count and percentages sum to ~100
  - an optimistic delete hides the record while the server set still has it

Scenarios:
  - three incidents, count_by(status)
  - three incidents filtered to "Open"
  - an update for a record not yet pushed shows up until rollback or push
"""

from datetime import UTC, datetime, timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from engine.recordsync.aggregate import count_by
from engine.recordsync.edits import OptimisticEditBuffer
from engine.recordsync.types import OptimisticEdit, Record
from engine.recordsync.views import ALL, FilterState, SortSpec, derive_view, equals, sort_records, text

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)

STATUSES = ["Open", "Closed", "In Progress", ""]
AOCS = ["Garuda", "Lion", "Wings", None]
FILTERS = [equals("status"), equals("aoc"), text()]


@st.composite
def record_sets(draw, max_size=30):
    n = draw(st.integers(min_value=0, max_value=max_size))
    records = []
    for i in range(n):
        fields = {}
        status = draw(st.sampled_from(STATUSES))
        if status:
            fields["status"] = status
        fields["aoc"] = draw(st.sampled_from(AOCS))
        fields["n"] = draw(st.one_of(st.none(), st.integers(min_value=-5, max_value=5)))
        updated = draw(st.one_of(st.none(), st.integers(min_value=-20, max_value=20)))
        records.append(
            Record(
                id=f"r{i}",
                fields=fields,
                updated_at=None if updated is None else T0 + timedelta(seconds=updated),
            )
        )
    return records


@st.composite
def edit_lists(draw, max_id=40):
    edits = []
    for record_id in draw(st.lists(st.integers(min_value=0, max_value=max_id), max_size=10, unique=True)):
        kind = draw(st.sampled_from(["create", "update", "delete"]))
        payload = {} if kind == "delete" else {"status": draw(st.sampled_from(STATUSES[:3]))}
        edits.append(OptimisticEdit(record_id=f"r{record_id}", kind=kind, payload=payload, submitted_at=T0))
    return edits


filter_values = st.fixed_dictionaries(
    {
        "status": st.sampled_from([ALL, *STATUSES[:3]]),
        "aoc": st.sampled_from([ALL, *AOCS[:3]]),
        "text": st.sampled_from(["", "r1", "lion", "open", "zzz"]),
    }
)


# ============================================================================
# Properties
# ============================================================================


class TestReconcileIdempotent:
    @given(records=record_sets(), edits=edit_lists())
    def test_reconcile_twice_equals_once(self, records, edits):
        buf = OptimisticEditBuffer()
        for e in edits:
            buf.apply(e)

        buf.reconcile(records)
        once = buf.edits
        second = buf.reconcile(records)

        assert second == []
        assert buf.edits == once


class TestFilterConjunction:
    @given(records=record_sets(), values=filter_values)
    def test_visible_iff_every_active_filter_matches(self, records, values):
        view = derive_view(records, None, values, FILTERS, None, page_size=1000)
        expected = {r.id for r in records if all(f.matches(r, values[f.name]) for f in FILTERS)}
        assert {r.id for r in view.visible_records} == expected

    @given(records=record_sets(), values=filter_values, cleared=st.sampled_from(["status", "aoc", "text"]))
    def test_clearing_a_filter_never_shrinks(self, records, values, cleared):
        narrow = derive_view(records, None, values, FILTERS, None, page_size=1000)
        state = FilterState(FILTERS, values)
        state.set(cleared, None)
        wide = derive_view(records, None, state, FILTERS, None, page_size=1000)
        assert {r.id for r in narrow.visible_records} <= {r.id for r in wide.visible_records}


class TestPaginationCoverage:
    @given(
        records=record_sets(),
        values=filter_values,
        page_size=st.integers(min_value=1, max_value=12),
        direction=st.sampled_from(["asc", "desc"]),
    )
    @settings(max_examples=60)
    def test_pages_concatenate_to_full_set(self, records, values, page_size, direction):
        sort = SortSpec("n", direction)
        full = derive_view(records, None, values, FILTERS, sort, page_size=10_000)
        first = derive_view(records, None, values, FILTERS, sort, page=0, page_size=page_size)

        collected = []
        for page in range(first.page_count):
            view = derive_view(records, None, values, FILTERS, sort, page=page, page_size=page_size)
            assert view.page == page
            collected.extend(view.visible_records)

        assert [r.id for r in collected] == [r.id for r in full.visible_records]
        assert len({r.id for r in collected}) == len(collected) == first.total_count

    @given(records=record_sets())
    def test_sort_is_deterministic(self, records):
        sort = SortSpec("status")
        assert sort_records(records, sort) == sort_records(list(reversed(records)), sort)


class TestAggregationTotals:
    @given(records=record_sets())
    def test_counts_and_percentages(self, records):
        buckets = count_by(records, "status")
        non_empty = sum(1 for r in records if r.get("status"))
        assert sum(b.count for b in buckets) == non_empty
        if non_empty:
            assert sum(b.percentage for b in buckets) == pytest.approx(100.0)
        else:
            assert buckets == []


class TestOptimisticDelete:
    @given(records=record_sets(max_size=20).filter(bool), data=st.data())
    def test_delete_hides_until_push(self, records, data):
        target = data.draw(st.sampled_from(records))
        buf = OptimisticEditBuffer()
        buf.apply(OptimisticEdit(record_id=target.id, kind="delete"))

        # Server set still contains the record
        buf.reconcile(records)
        view = derive_view(records, buf.edits, {}, [], None, page_size=1000)
        assert target.id not in {r.id for r in view.visible_records}

        # Push confirming the delete clears the edit
        remaining = [r for r in records if r.id != target.id]
        buf.reconcile(remaining)
        assert len(buf) == 0


# ============================================================================
# Scenarios
# ============================================================================


class TestScenarios:
    def test_count_by_status(self, incidents):
        buckets = count_by(incidents, "status")
        assert [(b.key, b.count, round(b.percentage, 1)) for b in buckets] == [
            ("Open", 2, 66.7),
            ("Closed", 1, 33.3),
        ]

    def test_filter_open(self, incidents):
        filters = [equals("status"), text()]
        view = derive_view(incidents, None, {"status": "Open", "text": ""}, filters, None, page_size=10)
        assert len(view.visible_records) == 2
        assert view.page_count == 1

    def test_update_on_unpushed_record_until_push(self, incidents):
        buf = OptimisticEditBuffer()
        buf.apply(OptimisticEdit(record_id="i4", kind="update", payload={"status": "Closed"}, submitted_at=T0))

        view = derive_view(incidents, buf.edits, {}, [], None)
        shown = {r.id: r for r in view.visible_records}
        assert shown["i4"].get("status") == "Closed"

        # Server push with the record at its new value supersedes the edit
        pushed = [*incidents, Record(id="i4", fields={"status": "Closed"}, updated_at=T0 + timedelta(seconds=1))]
        buf.reconcile(pushed)
        assert len(buf) == 0
        assert derive_view(pushed, buf.edits, {}, [], None).total_count == 4

    def test_update_on_unpushed_record_until_rollback(self, incidents):
        buf = OptimisticEditBuffer()
        buf.apply(OptimisticEdit(record_id="i4", kind="update", payload={"status": "Closed"}, submitted_at=T0))
        buf.reconcile(incidents)
        assert derive_view(incidents, buf.edits, {}, [], None).total_count == 4

        buf.rollback("i4")
        assert derive_view(incidents, buf.edits, {}, [], None).total_count == 3
