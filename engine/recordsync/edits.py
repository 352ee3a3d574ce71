"""
AirTrack Sync — Optimistic Edit Buffer

Holds local mutations that the store has not confirmed yet, at most one per
record id. The derived view overlays them so a change shows up before the
write round trip completes.

Edits leave the buffer two ways:
  - reconcile(records): the server push shows the change landed
  - rollback(record_id): the Action Gateway reported failure

There is no timeout rollback. A slow write stays visible until one of the
two happens; stale() only lists long-pending edits for display.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta

from engine.recordsync.types import CREATE, DELETE, UPDATE, OptimisticEdit, Record, utcnow

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(seconds=10)


def fold(previous: OptimisticEdit | None, edit: OptimisticEdit) -> OptimisticEdit:
    """
    Combine a new edit with the one already pending for the same record.

    create + update → create with the merged payload, marked amended
    update + update → update with the merged payload
    anything + delete → delete
    """
    if previous is None or edit.kind != UPDATE:
        return edit
    if previous.kind in (CREATE, UPDATE):
        return OptimisticEdit(
            record_id=edit.record_id,
            kind=previous.kind,
            payload={**previous.payload, **edit.payload},
            submitted_at=edit.submitted_at,
            amended=previous.kind == CREATE,
        )
    return edit


def is_confirmed(edit: OptimisticEdit, record: Record | None) -> bool:
    """True if the server state already reflects the edit."""
    if edit.kind == CREATE and not edit.amended:
        return record is not None
    if edit.kind == DELETE:
        return record is None
    if record is None:
        return False
    if record.updated_at is not None and record.updated_at >= edit.submitted_at:
        return True
    return all(record.fields.get(k) == v for k, v in edit.payload.items())


class OptimisticEditBuffer:
    def __init__(self, stale_after: timedelta = DEFAULT_STALE_AFTER):
        self.stale_after = stale_after
        self._edits: dict[str, OptimisticEdit] = {}

    def apply(self, edit: OptimisticEdit) -> OptimisticEdit | None:
        """Insert or fold an edit. Returns the edit it replaced, for rollback."""
        previous = self._edits.get(edit.record_id)
        self._edits[edit.record_id] = fold(previous, edit)
        return previous

    def rollback(self, record_id: str, restore: OptimisticEdit | None = None) -> OptimisticEdit | None:
        """
        Drop the pending edit for record_id. If restore is given it goes back
        in its place (the edit that was pending before a failed submit).
        """
        removed = self._edits.pop(record_id, None)
        if restore is not None:
            self._edits[record_id] = restore
        if removed is not None:
            logger.debug("edits: rolled back %s %s", removed.kind, record_id)
        return removed

    def reconcile(self, records: Iterable[Record]) -> list[OptimisticEdit]:
        """Drop every edit the server set confirms. Returns the dropped edits."""
        if not self._edits:
            return []
        by_id = {r.id: r for r in records}
        dropped = [e for e in self._edits.values() if is_confirmed(e, by_id.get(e.record_id))]
        for e in dropped:
            del self._edits[e.record_id]
        return dropped

    def rekey(self, local_id: str, server_id: str) -> None:
        """Move a pending create from its provisional id to the store-assigned one."""
        if local_id == server_id:
            return
        edit = self._edits.pop(local_id, None)
        if edit is None:
            return
        self._edits[server_id] = OptimisticEdit(
            record_id=server_id,
            kind=edit.kind,
            payload=edit.payload,
            submitted_at=edit.submitted_at,
            amended=edit.amended,
        )

    def stale(self, now: datetime | None = None) -> list[OptimisticEdit]:
        cutoff = (now or utcnow()) - self.stale_after
        return [e for e in self._edits.values() if e.submitted_at < cutoff]

    def get(self, record_id: str) -> OptimisticEdit | None:
        return self._edits.get(record_id)

    @property
    def edits(self) -> dict[str, OptimisticEdit]:
        return dict(self._edits)

    def clear(self) -> None:
        self._edits.clear()

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._edits

    def __len__(self) -> int:
        return len(self._edits)

    def __iter__(self) -> Iterator[OptimisticEdit]:
        return iter(list(self._edits.values()))
