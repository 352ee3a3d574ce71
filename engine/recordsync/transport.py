"""
AirTrack Sync — Document store transport

The backing document store is an opaque dependency. The kernel only needs:
  watch   — live subscription: push the full query result on every change
  fetch   — one-shot read of the same query
  get / add / set / update / delete / commit — writes used by the gateway

DocumentStore is the abstract interface. MemoryDocumentStore implements it
in-process for tests and local development; the Postgres implementation
lives in backend/repos/document_repo.py.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from engine.recordsync.timestamps import TimestampDecodeError, decode_timestamp, encode_timestamp
from engine.recordsync.types import Query, utcnow

# ---------------------------------------------------------------------------
# Wire types and write sentinels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Document:
    """A raw document as the store returns it: id plus undecoded data."""

    id: str
    data: dict[str, Any]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Replaced with the store's clock at write time
SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class ArrayUnion:
    """Append values to a list field, skipping ones already present."""

    values: tuple[Any, ...]

    def __init__(self, *values: Any) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass
class WriteOp:
    """One write inside a batch commit."""

    kind: Literal["set", "update", "delete"]
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[str, str], None]  # (error kind, message)
Unsubscribe = Callable[[], None]


class DocumentNotFound(Exception):
    """Update or delete targeted a document that does not exist."""


class StoreWriteError(Exception):
    """The store rejected a write (permission, network, quota)."""


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------


class DocumentStore:
    """
    Abstract document store.
    Implement with Postgres for production, or in-memory for tests.
    """

    def watch(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        """Open a live subscription. Returns a function that cancels it."""
        raise NotImplementedError

    async def fetch(self, query: Query) -> list[Document]:
        raise NotImplementedError

    async def get(self, collection: str, doc_id: str) -> Document | None:
        raise NotImplementedError

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert with a store-assigned id. Returns the id."""
        raise NotImplementedError

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create or overwrite a document with a caller-chosen id."""
        raise NotImplementedError

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document. Raises DocumentNotFound."""
        raise NotImplementedError

    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    async def commit(self, ops: list[WriteOp]) -> None:
        """Apply a batch of writes."""
        raise NotImplementedError

    def new_id(self) -> str:
        """Allocate a document id without writing (for batch sets)."""
        return uuid.uuid4().hex[:20]


# ---------------------------------------------------------------------------
# Shared helpers (used by every implementation)
# ---------------------------------------------------------------------------


def resolve_sentinels(data: dict[str, Any], existing: dict[str, Any] | None, now: datetime) -> dict[str, Any]:
    """Replace SERVER_TIMESTAMP and ArrayUnion markers with concrete values."""
    resolved: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = encode_timestamp(now)
        elif isinstance(value, ArrayUnion):
            current = list((existing or {}).get(key) or [])
            for v in value.values:
                if v not in current:
                    current.append(v)
            resolved[key] = current
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved


def _order_value(value: Any) -> tuple[int, Any]:
    """Sort key for raw values: None last, timestamps as instants, mixed types by rank."""
    if value is None:
        return (3, 0)
    if isinstance(value, dict):
        try:
            return (0, decode_timestamp(value).timestamp())  # type: ignore[union-attr]
        except TimestampDecodeError:
            return (2, str(value))
    if isinstance(value, bool):
        return (1, str(value))
    if isinstance(value, int | float):
        return (0, value)
    if isinstance(value, datetime):
        return (0, decode_timestamp(value).timestamp())  # type: ignore[union-attr]
    return (1, str(value))


def matches(data: dict[str, Any], query: Query) -> bool:
    if query.where is None:
        return True
    value = data.get(query.where.field)
    if query.where.op == "array-contains":
        return isinstance(value, list) and query.where.value in value
    return value == query.where.value


def run_query(docs: dict[str, dict[str, Any]], query: Query) -> list[Document]:
    """Evaluate a query against one collection's documents."""
    selected = [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in docs.items() if matches(data, query)]
    selected.sort(key=lambda d: d.id)
    if query.order is not None:
        present = [d for d in selected if d.data.get(query.order.field) is not None]
        missing = [d for d in selected if d.data.get(query.order.field) is None]
        present.sort(
            key=lambda d: _order_value(d.data.get(query.order.field)),  # type: ignore[union-attr]
            reverse=query.order.direction == "desc",
        )
        selected = present + missing
    if query.limit is not None:
        selected = selected[: query.limit]
    return selected


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


@dataclass
class _Watch:
    query: Query
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


class MemoryDocumentStore(DocumentStore):
    """
    In-memory store for tests and local development.

    Watchers receive the full query result synchronously after each write.
    Set `deliver = False` to hold pushes (a slow network) and call flush()
    to release them. Set `write_error` to make every write fail.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.deliver = True
        self.write_error: str | None = None
        self._clock = clock
        self._watches: list[_Watch] = []
        self._held: set[str] = set()

    # -- subscriptions -------------------------------------------------------

    def watch(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        w = _Watch(query=query, on_snapshot=on_snapshot, on_error=on_error)
        self._watches.append(w)
        w.on_snapshot(run_query(self.collections.get(query.collection, {}), query))

        def cancel() -> None:
            w.active = False
            if w in self._watches:
                self._watches.remove(w)

        return cancel

    @property
    def watch_count(self) -> int:
        return sum(1 for w in self._watches if w.active)

    def fail(self, collection: str, kind: str, message: str) -> None:
        """Report a subscription failure to every watcher of collection."""
        for w in list(self._watches):
            if w.active and w.query.collection == collection:
                w.on_error(kind, message)

    def flush(self) -> None:
        """Deliver pushes held while `deliver` was False."""
        held, self._held = self._held, set()
        for collection in sorted(held):
            self._push(collection)

    def _notify(self, collection: str) -> None:
        if not self.deliver:
            self._held.add(collection)
            return
        self._push(collection)

    def _push(self, collection: str) -> None:
        docs = self.collections.get(collection, {})
        for w in list(self._watches):
            if w.active and w.query.collection == collection:
                w.on_snapshot(run_query(docs, w.query))

    # -- reads ---------------------------------------------------------------

    async def fetch(self, query: Query) -> list[Document]:
        return run_query(self.collections.get(query.collection, {}), query)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self.collections.get(collection, {}).get(doc_id)
        return Document(id=doc_id, data=copy.deepcopy(data)) if data is not None else None

    # -- writes --------------------------------------------------------------

    def _check_writable(self) -> None:
        if self.write_error is not None:
            raise StoreWriteError(self.write_error)

    def _apply(self, op: WriteOp) -> None:
        docs = self.collections.setdefault(op.collection, {})
        now = self._clock()
        if op.kind == "set":
            docs[op.doc_id] = resolve_sentinels(op.data, None, now)
        elif op.kind == "update":
            existing = docs.get(op.doc_id)
            if existing is None:
                raise DocumentNotFound(f"{op.collection}/{op.doc_id}")
            existing.update(resolve_sentinels(op.data, existing, now))
        elif op.kind == "delete":
            docs.pop(op.doc_id, None)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check_writable()
        self._apply(WriteOp("set", collection, doc_id, data))
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check_writable()
        self._apply(WriteOp("update", collection, doc_id, data))
        self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._check_writable()
        self._apply(WriteOp("delete", collection, doc_id))
        self._notify(collection)

    async def commit(self, ops: list[WriteOp]) -> None:
        self._check_writable()
        # Validate update targets first so a missing document fails the batch untouched
        written: set[tuple[str, str]] = set()
        for op in ops:
            key = (op.collection, op.doc_id)
            if op.kind == "set":
                written.add(key)
            elif op.kind == "update" and key not in written and op.doc_id not in self.collections.get(op.collection, {}):
                raise DocumentNotFound(f"{op.collection}/{op.doc_id}")
        for op in ops:
            self._apply(op)
        for collection in sorted({op.collection for op in ops}):
            self._notify(collection)
