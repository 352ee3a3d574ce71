"""
Postgres document store.

Documents live in one JSONB table keyed by (collection, id). A trigger
fires pg_notify('documents_changed', collection) on every write; the store
holds one LISTEN connection and re-runs the watched queries of a changed
collection, pushing full results to watchers in delivery order.

Queries are evaluated in Python over the whole collection, the same way
MemoryDocumentStore does it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import asyncpg

from backend.db import listen_conn, system_conn
from engine.recordsync.transport import (
    Document,
    DocumentNotFound,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoreWriteError,
    Unsubscribe,
    WriteOp,
    resolve_sentinels,
    run_query,
)
from engine.recordsync.types import Query, utcnow

logger = logging.getLogger(__name__)

CHANNEL = "documents_changed"


@dataclass
class _PgWatch:
    query: Query
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


def _error_kind(exc: BaseException) -> str:
    if isinstance(exc, asyncpg.InsufficientPrivilegeError):
        return "permission-denied"
    return "unavailable"


class PostgresDocumentStore(DocumentStore):
    """All document operations against the documents table."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._watches: list[_PgWatch] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._tasks: set[asyncio.Task] = set()
        self._stop: asyncio.Event | None = None
        self._listener: asyncio.Task | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Open the LISTEN connection. Call once after init_pool()."""
        ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._listener = asyncio.create_task(self._listen(ready))
        await ready.wait()
        logger.info("document_repo: listening on %s", CHANNEL)

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._listener is not None:
            await self._listener
            self._listener = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def _listen(self, ready: asyncio.Event) -> None:
        async with listen_conn() as conn:
            await conn.add_listener(CHANNEL, self._on_notify)
            ready.set()
            try:
                await self._stop.wait()  # type: ignore[union-attr]
            finally:
                await conn.remove_listener(CHANNEL, self._on_notify)

    def _on_notify(self, conn: asyncpg.Connection, pid: int, channel: str, payload: str) -> None:
        self._schedule(payload)

    def _schedule(self, collection: str, watches: list[_PgWatch] | None = None) -> None:
        task = asyncio.get_running_loop().create_task(self._refresh(collection, watches))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -- subscriptions -------------------------------------------------------

    def watch(self, query: Query, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> Unsubscribe:
        w = _PgWatch(query=query, on_snapshot=on_snapshot, on_error=on_error)
        self._watches.append(w)
        # Initial snapshot arrives asynchronously
        self._schedule(query.collection, [w])

        def cancel() -> None:
            w.active = False
            if w in self._watches:
                self._watches.remove(w)

        return cancel

    @property
    def watch_count(self) -> int:
        return sum(1 for w in self._watches if w.active)

    async def _refresh(self, collection: str, watches: list[_PgWatch] | None = None) -> None:
        # One refresh per collection at a time, so pushes arrive in write order
        lock = self._locks.setdefault(collection, asyncio.Lock())
        async with lock:
            targets = [w for w in (watches or self._watches) if w.active and w.query.collection == collection]
            if not targets:
                return
            try:
                docs = await self._load(collection)
            except (asyncpg.PostgresError, OSError) as e:
                logger.warning("document_repo: refresh of %s failed: %s", collection, e)
                for w in targets:
                    if w.active:
                        w.on_error(_error_kind(e), str(e))
                return
            for w in targets:
                if w.active:
                    w.on_snapshot(run_query(docs, w.query))

    # -- reads ---------------------------------------------------------------

    async def _load(self, collection: str) -> dict[str, dict[str, Any]]:
        async with system_conn() as conn:
            rows = await conn.fetch("SELECT id, data FROM documents WHERE collection = $1", collection)
        return {row["id"]: row["data"] for row in rows}

    async def fetch(self, query: Query) -> list[Document]:
        return run_query(await self._load(query.collection), query)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with system_conn() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM documents WHERE collection = $1 AND id = $2",
                collection,
                doc_id,
            )
        return Document(id=doc_id, data=row["data"]) if row else None

    # -- writes --------------------------------------------------------------

    async def _apply(self, conn: asyncpg.Connection, op: WriteOp) -> None:
        now = self._clock()
        if op.kind == "set":
            await conn.execute(
                """
                INSERT INTO documents (collection, id, data, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $4)
                ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data, updated_at = EXCLUDED.updated_at
                """,
                op.collection,
                op.doc_id,
                resolve_sentinels(op.data, None, now),
                now,
            )
        elif op.kind == "update":
            row = await conn.fetchrow(
                "SELECT data FROM documents WHERE collection = $1 AND id = $2 FOR UPDATE",
                op.collection,
                op.doc_id,
            )
            if row is None:
                raise DocumentNotFound(f"{op.collection}/{op.doc_id}")
            existing = row["data"]
            merged = {**existing, **resolve_sentinels(op.data, existing, now)}
            await conn.execute(
                "UPDATE documents SET data = $3, updated_at = $4 WHERE collection = $1 AND id = $2",
                op.collection,
                op.doc_id,
                merged,
                now,
            )
        elif op.kind == "delete":
            await conn.execute(
                "DELETE FROM documents WHERE collection = $1 AND id = $2",
                op.collection,
                op.doc_id,
            )

    async def commit(self, ops: list[WriteOp]) -> None:
        """Apply writes in one transaction. Any failure leaves every document untouched."""
        try:
            async with system_conn() as conn:
                for op in ops:
                    await self._apply(conn, op)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise StoreWriteError(str(e) or type(e).__name__) from e

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.commit([WriteOp("set", collection, doc_id, data)])

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.commit([WriteOp("update", collection, doc_id, data)])

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.commit([WriteOp("delete", collection, doc_id)])
