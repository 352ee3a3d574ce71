"""
Page Controller — one record page's wiring.

Binds a store subscription, an optimistic edit buffer and a view state to
the derived view and analytics, and routes submits to the Action Gateway.

Submit contract:
  1. validate locally with the kind's form (the same model the gateway uses)
  2. apply an optimistic edit
  3. await the gateway
  4. failure → roll back (restoring any edit it replaced) and report
  5. success → leave the edit; the next push reconciles it away

Submits for the same record run one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal, Protocol

from backend.config import settings
from backend.models.gateway import FormErrors, parse_gateway_result
from backend.models.session import SessionContext
from backend.services.action_gateway import ActionGateway, validate_payload
from backend.services.record_kinds import RecordKind
from engine.recordsync.edits import OptimisticEditBuffer
from engine.recordsync.store_client import RecordStoreClient, Subscription
from engine.recordsync.transport import DocumentStore
from engine.recordsync.types import (
    CREATE,
    DELETE,
    UPDATE,
    DerivedView,
    Direction,
    EditKind,
    OptimisticEdit,
    RecordSet,
    RecordSetChanged,
    StoreError,
    SubscriptionEvent,
    utcnow,
)
from engine.recordsync.views import ViewState, apply_filter, merge_overlay

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Where a page reports to the user."""

    def toast(self, message: str, *, variant: str = "default") -> None:
        """A transient notice (mutation succeeded or failed)."""

    def banner(self, message: str | None) -> None:
        """A persistent notice for the whole page. None clears it."""


class LoggingNotifier:
    """Notifier for headless use: writes to the log."""

    def toast(self, message: str, *, variant: str = "default") -> None:
        logger.info("page: toast (%s): %s", variant, message)

    def banner(self, message: str | None) -> None:
        if message:
            logger.warning("page: banner: %s", message)


@dataclass(frozen=True)
class SubmitResult:
    """
    Outcome of one submit.

    error_kind is "validation" when the local check failed (the gateway was
    never called) and "gateway" when the gateway reported failure.
    """

    ok: bool
    record_id: str | None = None
    error_kind: Literal["validation", "gateway"] | None = None
    field_errors: FormErrors = field(default_factory=dict)
    message: str | None = None
    data: Any = None


class PageController:
    def __init__(
        self,
        kind: RecordKind,
        store: DocumentStore,
        gateway: ActionGateway,
        session: SessionContext,
        notifier: Notifier | None = None,
        *,
        page_size: int | None = None,
        stale_after: timedelta | None = None,
        on_change: Callable[[PageController], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.kind = kind
        self.store = store
        self.gateway = gateway
        self.session = session
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.on_change = on_change
        self.client = RecordStoreClient(store, kind.timestamp_fields)
        self.buffer = OptimisticEditBuffer(
            stale_after or timedelta(seconds=settings.OPTIMISTIC_EDIT_STALE_SECONDS)
        )
        self.view_state = ViewState(kind.filters, kind.default_sort, page_size or settings.DEFAULT_PAGE_SIZE)
        self.records: RecordSet = ()
        self.store_error: StoreError | None = None
        self._clock = clock
        self._subscription: Subscription | None = None
        self._locks: dict[str, list[Any]] = {}

    # -- lifecycle ---------------------------------------------------------------

    def mount(self) -> None:
        if self.mounted:
            return
        self._subscription = self.client.subscribe(
            self.kind.collection, self.kind.order, listener=self._on_event
        )
        logger.info("page: mounted %s for %s", self.kind.name, self.session.user_id)

    def unmount(self) -> None:
        """Stop listening. Safe to call more than once."""
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()
            logger.info("page: unmounted %s for %s", self.kind.name, self.session.user_id)

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def loaded(self) -> bool:
        return self._subscription is not None and self._subscription.loaded

    def _on_event(self, event: SubscriptionEvent) -> None:
        if isinstance(event, RecordSetChanged):
            self.records = event.records
            dropped = self.buffer.reconcile(event.records)
            if dropped:
                logger.debug("page: %s reconciled %d edits", self.kind.name, len(dropped))
            if self.store_error is not None:
                self.store_error = None
                self.notifier.banner(None)
        else:
            self.store_error = event
            self.notifier.banner(f"Could not load records: {event.message}")
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    # -- outputs -----------------------------------------------------------------

    def view(self) -> DerivedView:
        return self.view_state.derive(self.records, self.buffer.edits)

    def analytics(self, filtered: bool = False) -> dict[str, Any]:
        """The kind's dashboard figures over the merged set (or the filtered view)."""
        merged = merge_overlay(self.records, self.buffer.edits)
        if filtered:
            merged = apply_filter(merged, self.view_state.filters.definitions, self.view_state.filters)
        return self.kind.compute_analytics(merged)

    def options(self, filter_name: str) -> list[str]:
        """Dropdown values for one filter, from the merged set."""
        return self.kind.options(merge_overlay(self.records, self.buffer.edits), filter_name)

    def refresh(self) -> None:
        """Re-announce the current state (after several view_state changes at once)."""
        self._changed()

    def stale_edits(self) -> list[OptimisticEdit]:
        return self.buffer.stale(self._clock())

    # -- view state --------------------------------------------------------------

    def set_filter(self, name: str, value: Any) -> None:
        self.view_state.set_filter(name, value)
        self._changed()

    def reset_filters(self) -> None:
        self.view_state.reset_filters()
        self._changed()

    def set_sort(self, column: str, direction: Direction | None = None) -> None:
        self.view_state.set_sort(column, direction)
        self._changed()

    def set_page(self, page: int) -> None:
        self.view_state.set_page(page)
        self._changed()

    # -- submits -----------------------------------------------------------------

    async def submit_create(self, payload: dict[str, Any]) -> SubmitResult:
        form, errors = validate_payload(self.kind, payload)
        if form is None:
            return SubmitResult(ok=False, error_kind="validation", field_errors=errors)

        local_id = self.store.new_id()
        fields = self.kind.overlay_fields(self.kind.document(form))
        result = await self._submit(
            local_id,
            CREATE,
            fields,
            lambda: self.gateway.create(self.kind, payload, self.session, record_id=local_id),
            "Record added",
        )
        if result.ok and isinstance(result.data, dict):
            server_id = result.data.get("id") or local_id
            self.buffer.rekey(local_id, server_id)
            return SubmitResult(ok=True, record_id=server_id, data=result.data)
        return result

    async def submit_update(self, record_id: str, payload: dict[str, Any]) -> SubmitResult:
        form, errors = validate_payload(self.kind, payload)
        if form is None:
            return SubmitResult(ok=False, record_id=record_id, error_kind="validation", field_errors=errors)

        fields = self.kind.overlay_fields(self.kind.document(form))
        return await self._submit(
            record_id,
            UPDATE,
            fields,
            lambda: self.gateway.update(self.kind, record_id, payload, self.session),
            "Record updated",
        )

    async def submit_delete(self, record_id: str) -> SubmitResult:
        return await self._submit(
            record_id,
            DELETE,
            {},
            lambda: self.gateway.delete(self.kind, record_id, self.session),
            "Record deleted",
        )

    async def _submit(
        self,
        record_id: str,
        kind: EditKind,
        fields: dict[str, Any],
        call: Callable[[], Awaitable[Any]],
        success_message: str,
    ) -> SubmitResult:
        async with self._record_lock(record_id):
            edit = OptimisticEdit(record_id=record_id, kind=kind, payload=fields, submitted_at=self._clock())
            previous = self.buffer.apply(edit)
            self._changed()

            try:
                result = parse_gateway_result(await call())
            except Exception:
                self.buffer.rollback(record_id, restore=previous)
                self._changed()
                raise

            if not result.success:
                self.buffer.rollback(record_id, restore=previous)
                self._changed()
                logger.info("page: %s %s %s failed: %s", self.kind.name, kind, record_id, result.message)
                self.notifier.toast(result.message, variant="destructive")
                return SubmitResult(
                    ok=False,
                    record_id=record_id,
                    error_kind="gateway",
                    field_errors=result.field_errors,
                    message=result.message,
                )

            self.notifier.toast(success_message)
            return SubmitResult(ok=True, record_id=record_id, data=result.data)

    @asynccontextmanager
    async def _record_lock(self, record_id: str) -> AsyncIterator[None]:
        # [lock, holders]; dropped once no submit for the record is pending
        entry = self._locks.get(record_id)
        if entry is None:
            entry = self._locks[record_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[record_id]

