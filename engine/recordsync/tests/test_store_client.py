"""
AirTrack Sync -- Record Store Client Tests

Covers:
  - initial load and every write push a complete RecordSet
  - re-sorting by OrderSpec, None last, ties by id
  - timestamp normalization; undecodable values flag the record, never drop it
  - StoreError arrives as an event and the subscription stays open
  - unsubscribe is idempotent and blocks late transport callbacks
  - SubscriptionGroup closes vanished children before opening new ones
"""

from datetime import UTC, datetime

from engine.recordsync.store_client import RecordStoreClient, SubscriptionGroup, normalize_document
from engine.recordsync.transport import Document
from engine.recordsync.types import OrderSpec, RecordSetChanged, StoreError, Where


def collect():
    events = []
    return events, events.append


def ids(event):
    return [r.id for r in event.records]


# ============================================================================
# Normalization
# ============================================================================


class TestNormalizeDocument:
    def test_timestamps_become_attributes(self):
        rec = normalize_document(
            Document(id="a", data={"title": "x", "createdAt": "2024-01-01T00:00:00Z", "updatedAt": None})
        )
        assert rec.created_at == datetime(2024, 1, 1, tzinfo=UTC)
        assert rec.updated_at is None
        assert "createdAt" not in rec.fields
        assert rec.decode_error is None

    def test_bad_timestamp_flags_record(self):
        rec = normalize_document(Document(id="a", data={"title": "x", "createdAt": "not a date"}))
        assert rec.id == "a"
        assert rec.fields == {"title": "x"}
        assert rec.created_at is None
        assert "createdAt" in rec.decode_error

    def test_extra_timestamp_fields(self):
        rec = normalize_document(
            Document(id="a", data={"tanggal": "2023-07-04", "due": "bogus"}),
            timestamp_fields=("tanggal", "due", "absent"),
        )
        assert rec.fields["tanggal"] == datetime(2023, 7, 4, tzinfo=UTC)
        assert rec.fields["due"] is None
        assert "absent" not in rec.fields
        assert "due" in rec.decode_error


# ============================================================================
# Subscribe / push
# ============================================================================


class TestSubscribe:
    async def test_initial_load_emits_record_set(self, store):
        await store.set("glossary", "g1", {"tsu": "Runway", "createdAt": "2024-01-01T00:00:00Z"})
        events, listener = collect()

        sub = RecordStoreClient(store).subscribe("glossary", listener=listener)

        assert len(events) == 1
        assert isinstance(events[0], RecordSetChanged)
        assert ids(events[0]) == ["g1"]
        assert sub.loaded
        assert sub.records == events[0].records

    async def test_every_write_pushes_full_set(self, store):
        events, listener = collect()
        RecordStoreClient(store).subscribe("glossary", listener=listener)

        await store.add("glossary", {"tsu": "A"})
        await store.add("glossary", {"tsu": "B"})

        assert [len(e.records) for e in events] == [0, 1, 2]

    async def test_order_desc_puts_none_last(self, store):
        await store.set("c", "old", {"createdAt": "2024-01-01T00:00:00Z"})
        await store.set("c", "new", {"createdAt": "2024-02-01T00:00:00Z"})
        await store.set("c", "pending", {"createdAt": None})
        events, listener = collect()

        RecordStoreClient(store).subscribe("c", OrderSpec("createdAt", "desc"), listener=listener)

        assert ids(events[-1]) == ["new", "old", "pending"]

    async def test_malformed_document_is_kept(self, store):
        await store.set("c", "good", {"createdAt": "2024-01-01T00:00:00Z"})
        await store.set("c", "bad", {"createdAt": "garbage"})
        events, listener = collect()

        RecordStoreClient(store).subscribe("c", listener=listener)

        records = {r.id: r for r in events[-1].records}
        assert set(records) == {"good", "bad"}
        assert records["bad"].decode_error is not None
        assert records["good"].decode_error is None

    async def test_limit_and_where(self, store):
        await store.set("rooms", "a_b", {"participants": ["a", "b"], "createdAt": "2024-01-01T00:00:00Z"})
        await store.set("rooms", "a_c", {"participants": ["a", "c"], "createdAt": "2024-01-02T00:00:00Z"})
        await store.set("rooms", "b_c", {"participants": ["b", "c"], "createdAt": "2024-01-03T00:00:00Z"})
        events, listener = collect()

        RecordStoreClient(store).subscribe(
            "rooms", limit=1, where=Where("participants", "array-contains", "a"), listener=listener
        )

        assert ids(events[-1]) == ["a_c"]


class TestStoreErrors:
    async def test_failure_is_an_event_and_subscription_stays_open(self, store):
        events, listener = collect()
        sub = RecordStoreClient(store).subscribe("c", listener=listener)

        store.fail("c", "permission-denied", "Missing or insufficient permissions.")
        await store.add("c", {"x": 1})

        assert isinstance(events[1], StoreError)
        assert events[1].kind == "permission-denied"
        assert events[1].collection == "c"
        assert isinstance(events[2], RecordSetChanged)
        assert sub.active

    def test_unknown_kind_is_normalized(self, store):
        events, listener = collect()
        RecordStoreClient(store).subscribe("c", listener=listener)

        store.fail("c", "resource-exhausted", "quota")

        assert events[-1].kind == "unknown"


class TestUnsubscribe:
    async def test_no_events_after_unsubscribe(self, store):
        events, listener = collect()
        sub = RecordStoreClient(store).subscribe("c", listener=listener)

        sub.unsubscribe()
        await store.add("c", {"x": 1})
        store.fail("c", "unavailable", "offline")

        assert len(events) == 1
        assert store.watch_count == 0

    def test_unsubscribe_is_idempotent(self, store):
        sub = RecordStoreClient(store).subscribe("c", listener=lambda e: None)
        sub.unsubscribe()
        sub.unsubscribe()
        assert not sub.active

    async def test_late_transport_callback_is_ignored(self, store):
        events, listener = collect()
        sub = RecordStoreClient(store).subscribe("c", listener=listener)
        await store.add("c", {"x": 1})

        sub.unsubscribe()
        # Transport delivers one more snapshot after cancel
        sub._on_snapshot([Document(id="late", data={})])
        sub._on_error("unavailable", "late")

        assert len(events) == 2
        assert ids(events[-1]) != ["late"]

    async def test_listener_may_unsubscribe_inside_a_push(self, store):
        events = []
        holder = {}

        def listener(event):
            events.append(event)
            if len(events) == 2:
                holder["sub"].unsubscribe()

        holder["sub"] = RecordStoreClient(store).subscribe("c", listener=listener)
        await store.add("c", {"x": 1})
        await store.add("c", {"x": 2})

        assert len(events) == 2
        assert store.watch_count == 0


# ============================================================================
# SubscriptionGroup
# ============================================================================


class TestSubscriptionGroup:
    def _factory(self, client, opened):
        def factory(key):
            opened.append(key)
            return client.subscribe(f"rooms/{key}/messages", limit=1, listener=lambda e: None)

        return factory

    def test_sync_opens_one_child_per_key(self, store):
        client = RecordStoreClient(store)
        group = SubscriptionGroup()
        opened = []

        group.sync(["r1", "r2", "r1"], self._factory(client, opened))

        assert opened == ["r1", "r2"]
        assert len(group) == 2
        assert store.watch_count == 2

    def test_resync_keeps_existing_children(self, store):
        client = RecordStoreClient(store)
        group = SubscriptionGroup()
        opened = []
        factory = self._factory(client, opened)

        group.sync(["r1", "r2"], factory)
        first = group.get("r1")
        group.sync(["r1", "r2"], factory)

        assert opened == ["r1", "r2"]
        assert group.get("r1") is first

    def test_vanished_keys_close_before_new_ones_open(self, store):
        client = RecordStoreClient(store)
        group = SubscriptionGroup()
        log = []

        def factory(key):
            log.append(("open", key, store.watch_count))
            return client.subscribe(f"rooms/{key}/messages", listener=lambda e: None)

        group.sync(["r1", "r2"], factory)
        old = group.get("r1")
        group.sync(["r2", "r3"], factory)

        assert not old.active
        assert "r1" not in group
        # r1 was already closed when r3 opened: only r2 was live
        assert log[-1] == ("open", "r3", 1)

    def test_close_all(self, store):
        client = RecordStoreClient(store)
        group = SubscriptionGroup()
        group.sync(["r1", "r2", "r3"], self._factory(client, []))

        group.close_all()
        group.close_all()

        assert len(group) == 0
        assert store.watch_count == 0
