"""
AirTrack Sync — the client-side record layer.

Four components:
  store_client — live subscription → normalized, re-sorted RecordSet
  edits        — optimistic edits overlaid until the store confirms them
  views        — (records, edits, filters, sort, page) → DerivedView  (pure)
  aggregate    — grouped counts and percentages for analytics  (pure)

Transport:
  DocumentStore, MemoryDocumentStore
"""

from engine.recordsync.aggregate import count_by, count_by_multi_value, count_where, percentage
from engine.recordsync.edits import OptimisticEditBuffer
from engine.recordsync.store_client import RecordStoreClient, Subscription, SubscriptionGroup
from engine.recordsync.transport import DocumentStore, MemoryDocumentStore
from engine.recordsync.types import (
    AggregateBucket,
    DerivedView,
    OptimisticEdit,
    OrderSpec,
    Record,
    RecordSetChanged,
    StoreError,
)
from engine.recordsync.views import ALL, FilterState, SortSpec, ViewState, derive_view

__all__ = [
    "RecordStoreClient",
    "Subscription",
    "SubscriptionGroup",
    "OptimisticEditBuffer",
    "derive_view",
    "FilterState",
    "ViewState",
    "SortSpec",
    "ALL",
    "count_by",
    "count_by_multi_value",
    "count_where",
    "percentage",
    "DocumentStore",
    "MemoryDocumentStore",
    "Record",
    "OrderSpec",
    "OptimisticEdit",
    "DerivedView",
    "AggregateBucket",
    "RecordSetChanged",
    "StoreError",
]
