"""
AirTrack Sync — Shared Types

Data classes used across the store client, edit buffer, view engine and
aggregation engine. These are the contracts that bind the kernel together.

- Record: one normalized document from a subscribed collection
- RecordSet: the ordered tuple of Records a subscription emits
- OptimisticEdit: a local mutation not yet confirmed by the store
- DerivedView / AggregateBucket: pure computation results, never persisted
- RecordSetChanged / StoreError: the two events a subscription emits
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CREATE = "create"
UPDATE = "update"
DELETE = "delete"

EDIT_KINDS: set[str] = {CREATE, UPDATE, DELETE}

EditKind = Literal["create", "update", "delete"]
Direction = Literal["asc", "desc"]

# Document keys that map onto Record attributes instead of Record.fields
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"

STORE_ERROR_KINDS: set[str] = {
    "permission-denied",
    "unauthenticated",
    "unavailable",
    "not-found",
    "unknown",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Record:
    """
    One persisted item, normalized for the rest of the kernel.

    `fields` keeps the stored document keys as-is (camelCase). Timestamps
    are decoded into aware UTC datetimes; when a document carries a value the
    decoder cannot read, the field is None and `decode_error` says which.
    """

    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    decode_error: str | None = None

    def get(self, name: str, default: Any = None) -> Any:
        """Look up a column by document key, including the timestamp columns."""
        if name == "id":
            return self.id
        if name == CREATED_AT:
            return self.created_at
        if name == UPDATED_AT:
            return self.updated_at
        return self.fields.get(name, default)

    def with_fields(self, payload: dict[str, Any]) -> Record:
        """Return a copy whose fields are overlaid with payload (payload wins)."""
        return replace(self, fields={**self.fields, **payload})

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, **self.fields}
        d[CREATED_AT] = self.created_at.isoformat() if self.created_at else None
        d[UPDATED_AT] = self.updated_at.isoformat() if self.updated_at else None
        if self.decode_error is not None:
            d["decodeError"] = self.decode_error
        return d


RecordSet = tuple[Record, ...]


@dataclass(frozen=True)
class OrderSpec:
    """Ordering a subscription asks the store for, e.g. createdAt descending."""

    field: str = CREATED_AT
    direction: Direction = "desc"


@dataclass(frozen=True)
class Where:
    """A single query condition. op is "==" or "array-contains"."""

    field: str
    op: Literal["==", "array-contains"]
    value: Any


@dataclass(frozen=True)
class Query:
    """What a subscription watches: one collection path plus order/limit/where."""

    collection: str
    order: OrderSpec | None = None
    limit: int | None = None
    where: Where | None = None


# ---------------------------------------------------------------------------
# Optimistic edits
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OptimisticEdit:
    """A pending local mutation. At most one per record_id in a buffer."""

    record_id: str
    kind: EditKind
    payload: dict[str, Any] = field(default_factory=dict)
    submitted_at: datetime = field(default_factory=utcnow)
    # set when an update was folded onto a pending create; the create then
    # confirms only once the server copy carries the folded payload
    amended: bool = False

    def __post_init__(self) -> None:
        if self.kind not in EDIT_KINDS:
            raise ValueError(f"unknown edit kind: {self.kind!r}")


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DerivedView:
    visible_records: tuple[Record, ...]
    total_count: int
    page: int
    page_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.visible_records],
            "total_count": self.total_count,
            "page": self.page,
            "page_count": self.page_count,
        }


@dataclass(frozen=True)
class AggregateBucket:
    key: str
    count: int
    percentage: float

    @property
    def label(self) -> str:
        """Chart label in the dashboards' "name (count - 66.7%)" form."""
        return f"{self.key} ({self.count} - {self.percentage:.1f}%)"

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "count": self.count, "percentage": self.percentage}


# ---------------------------------------------------------------------------
# Subscription events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordSetChanged:
    """Emitted on initial load and on every server-side change."""

    collection: str
    records: RecordSet


@dataclass(frozen=True)
class StoreError:
    """
    Emitted when the subscription itself fails (permission, network).
    Delivered as an event, never raised. The subscription stays open.
    """

    kind: str
    message: str
    collection: str

    def __post_init__(self) -> None:
        if self.kind not in STORE_ERROR_KINDS:
            object.__setattr__(self, "kind", "unknown")


SubscriptionEvent = RecordSetChanged | StoreError
