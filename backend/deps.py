"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from backend.services.action_gateway import ActionGateway
from backend.services.record_kinds import RecordKind, UnknownRecordKind, get_kind
from engine.recordsync.transport import DocumentStore


def get_store(request: Request) -> DocumentStore:
    """The document store the lifespan opened."""
    return request.app.state.store


def get_gateway(store: DocumentStore = Depends(get_store)) -> ActionGateway:
    return ActionGateway(store)


def record_kind(kind: str) -> RecordKind:
    """Path parameter → RecordKind, 404 for an unknown kind."""
    try:
        return get_kind(kind)
    except UnknownRecordKind as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown record kind: {kind}") from e
