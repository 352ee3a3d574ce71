"""
Record routes — views, analytics, mutations, CSV import and export.

Reads fetch the whole collection and derive on the server, the same
computation the live Page Controller runs. Mutations go through the
Action Gateway and return its result shape.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response

from backend.auth import get_session
from backend.config import settings
from backend.deps import get_gateway, get_store, record_kind
from backend.middleware.rate_limit import import_rate_limiter
from backend.models.gateway import GatewayFailure, GatewaySuccess
from backend.models.session import SessionContext
from backend.services.action_gateway import ActionGateway
from backend.services.csv_io import CsvFormatError, export_csv, parse_csv
from backend.services.record_kinds import RecordKind
from engine.recordsync.store_client import normalize_document
from engine.recordsync.transport import DocumentStore
from engine.recordsync.types import Query as StoreQuery
from engine.recordsync.types import Record
from engine.recordsync.views import ViewState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["records"])


async def load_records(store: DocumentStore, kind: RecordKind) -> list[Record]:
    """One-shot read of a kind's whole collection, normalized."""
    docs = await store.fetch(StoreQuery(collection=kind.collection, order=kind.order))
    return [normalize_document(d, kind.timestamp_fields) for d in docs]


def _result_response(result: GatewaySuccess | GatewayFailure, success_status: int = 200) -> JSONResponse:
    if result.success:
        return JSONResponse(status_code=success_status, content=result.model_dump(mode="json"))
    code = status.HTTP_422_UNPROCESSABLE_ENTITY if result.field_errors else status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/{kind}", status_code=200)
async def list_records(
    request: Request,
    kind: RecordKind = Depends(record_kind),
    page: int = Query(default=0, ge=0),
    page_size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=100),
    sort: str | None = None,
    direction: Literal["asc", "desc"] | None = None,
    q: str = "",
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """
    One page of a kind's records.

    Every filter the kind offers is a query parameter of the same name
    (`status=Final`, `year=2023`); `q` is the free-text search.
    """
    state = ViewState(kind.filters, kind.default_sort, page_size)
    for f in kind.filters:
        value = q if f.kind == "text" else request.query_params.get(f.name)
        if value is not None:
            state.set_filter(f.name, value)
    if sort:
        state.set_sort(sort, direction or "asc")
    state.set_page(page)

    view = state.derive(await load_records(store, kind))
    return {**view.to_dict(), "filters": state.filters.values(), "kind": kind.name}


@router.get("/{kind}/analytics", status_code=200)
async def record_analytics(
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> dict[str, Any]:
    """The kind's dashboard figures over every record."""
    return kind.compute_analytics(await load_records(store, kind))


@router.get("/{kind}/options/{filter_name}", status_code=200)
async def filter_options(
    filter_name: str,
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> list[str]:
    """Dropdown values for one filter."""
    records = await load_records(store, kind)
    try:
        return kind.options(records, filter_name)
    except KeyError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown filter: {filter_name}") from e


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/{kind}", status_code=201)
async def create_record(
    payload: dict[str, Any] = Body(...),
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    gateway: ActionGateway = Depends(get_gateway),
) -> JSONResponse:
    result = await gateway.create(kind, payload, session)
    return _result_response(result, success_status=status.HTTP_201_CREATED)


@router.put("/{kind}/{record_id}", status_code=200)
async def update_record(
    record_id: str,
    payload: dict[str, Any] = Body(...),
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    gateway: ActionGateway = Depends(get_gateway),
) -> JSONResponse:
    result = await gateway.update(kind, record_id, payload, session)
    return _result_response(result)


@router.delete("/{kind}/{record_id}", status_code=200)
async def delete_record(
    record_id: str,
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    gateway: ActionGateway = Depends(get_gateway),
) -> JSONResponse:
    result = await gateway.delete(kind, record_id, session)
    return _result_response(result)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


@router.post("/{kind}/import", status_code=201)
async def import_records(
    request: Request,
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    gateway: ActionGateway = Depends(get_gateway),
) -> JSONResponse:
    """Import a CSV file (request body, text/csv) as new records."""
    if not import_rate_limiter.check_rate_limit(session.user_id, settings.IMPORTS_PER_HOUR):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many imports. Please try again later.",
        )

    raw = await request.body()
    try:
        rows = parse_csv(raw.decode("utf-8"))
    except (UnicodeDecodeError, CsvFormatError) as e:
        logger.info("records: rejected %s import from %s: %s", kind.name, session.user_id, e)
        return _result_response(GatewayFailure(error=f"Could not read CSV file: {e}"))

    result = await gateway.import_rows(kind, rows, session)
    return _result_response(result, success_status=status.HTTP_201_CREATED)


@router.get("/{kind}/export", status_code=200)
async def export_records(
    kind: RecordKind = Depends(record_kind),
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> Response:
    """Download every record of the kind as CSV."""
    result = export_csv(await load_records(store, kind))
    if not result.success:
        return _result_response(result)
    return Response(
        content=result.data,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind.name}-records.csv"'},
    )
