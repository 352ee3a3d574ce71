"""
AirTrack Sync — Record Store Client

Keeps a live local copy of one remote collection and pushes every change to
a listener as a complete, re-sorted RecordSet.

    client = RecordStoreClient(store)
    sub = client.subscribe("ccefod", OrderSpec(), listener=on_event)
    ...
    sub.unsubscribe()

Listener receives RecordSetChanged on the initial load and every change, or
StoreError when the subscription itself fails. Errors are events, never
raised. Once unsubscribe() returns, the listener is never called again from
that subscription, even if the transport delivers a late snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from engine.recordsync.timestamps import TimestampDecodeError, decode_timestamp
from engine.recordsync.transport import Document, DocumentStore, Unsubscribe
from engine.recordsync.types import (
    CREATED_AT,
    UPDATED_AT,
    OrderSpec,
    Query,
    Record,
    RecordSet,
    RecordSetChanged,
    StoreError,
    SubscriptionEvent,
    Where,
)
from engine.recordsync.views import sort_records

logger = logging.getLogger(__name__)

Listener = Callable[[SubscriptionEvent], None]


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_document(doc: Document, timestamp_fields: Iterable[str] = ()) -> Record:
    """
    Turn one raw document into a Record.

    createdAt/updatedAt become Record attributes; any extra timestamp_fields
    are decoded in place. A value that will not decode becomes None and is
    named in decode_error. The record is always returned.
    """
    data = dict(doc.data)
    failed: list[str] = []

    def decode(name: str, raw: Any) -> Any:
        try:
            return decode_timestamp(raw)
        except TimestampDecodeError:
            failed.append(name)
            return None

    created_at = decode(CREATED_AT, data.pop(CREATED_AT, None))
    updated_at = decode(UPDATED_AT, data.pop(UPDATED_AT, None))
    for name in timestamp_fields:
        if name in data:
            data[name] = decode(name, data[name])

    decode_error = None
    if failed:
        decode_error = "could not decode " + ", ".join(failed)
        logger.debug("store_client: %s has undecodable %s", doc.id, failed)

    return Record(
        id=doc.id,
        fields=data,
        created_at=created_at,
        updated_at=updated_at,
        decode_error=decode_error,
    )


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class Subscription:
    """
    One live subscription. Owns the canonical RecordSet for its query;
    nothing else writes to it.
    """

    def __init__(self, query: Query, listener: Listener, timestamp_fields: tuple[str, ...] = ()):
        self.query = query
        self.records: RecordSet = ()
        self.loaded = False
        self._listener = listener
        self._timestamp_fields = timestamp_fields
        self._cancel: Unsubscribe | None = None
        self._active = True

    @property
    def collection(self) -> str:
        return self.query.collection

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Release the transport subscription. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()
        logger.debug("store_client: unsubscribed %s", self.collection)

    # -- transport callbacks ---------------------------------------------------

    def _on_snapshot(self, docs: list[Document]) -> None:
        if not self._active:
            return
        records = [normalize_document(d, self._timestamp_fields) for d in docs]
        self.records = tuple(sort_records(records, self.query.order))
        self.loaded = True
        self._listener(RecordSetChanged(collection=self.collection, records=self.records))

    def _on_error(self, kind: str, message: str) -> None:
        if not self._active:
            return
        logger.warning("store_client: subscription to %s failed (%s): %s", self.collection, kind, message)
        self._listener(StoreError(kind=kind, message=message, collection=self.collection))


class RecordStoreClient:
    """Opens Subscriptions against a DocumentStore."""

    def __init__(self, store: DocumentStore, timestamp_fields: Iterable[str] = ()):
        self.store = store
        self.timestamp_fields = tuple(timestamp_fields)

    def subscribe(
        self,
        collection: str,
        order: OrderSpec | None = None,
        *,
        limit: int | None = None,
        where: Where | None = None,
        listener: Listener,
    ) -> Subscription:
        query = Query(collection=collection, order=order or OrderSpec(), limit=limit, where=where)
        sub = Subscription(query, listener, self.timestamp_fields)
        cancel = self.store.watch(query, sub._on_snapshot, sub._on_error)
        if sub.active:
            sub._cancel = cancel
        else:
            # Listener unsubscribed during the initial snapshot
            cancel()
        logger.debug("store_client: subscribed %s", collection)
        return sub


# ---------------------------------------------------------------------------
# Child subscriptions
# ---------------------------------------------------------------------------


class SubscriptionGroup:
    """
    Child subscriptions keyed by string, owned by one parent.

    sync() closes children whose key is gone before opening children for new
    keys, in one synchronous step, so no stale listener outlives a parent
    re-fire. close_all() tears every child down.
    """

    def __init__(self) -> None:
        self._children: dict[str, Subscription] = {}

    def sync(self, keys: Iterable[str], factory: Callable[[str], Subscription]) -> None:
        wanted = list(dict.fromkeys(keys))
        keep = set(wanted)
        for key in [k for k in self._children if k not in keep]:
            self._children.pop(key).unsubscribe()
        for key in wanted:
            if key not in self._children:
                self._children[key] = factory(key)

    def close_all(self) -> None:
        children, self._children = self._children, {}
        for sub in children.values():
            sub.unsubscribe()

    def get(self, key: str) -> Subscription | None:
        return self._children.get(key)

    def keys(self) -> list[str]:
        return list(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __contains__(self, key: object) -> bool:
        return key in self._children
