"""Notification routes — the current user's feed and read receipts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from backend.auth import get_session
from backend.config import settings
from backend.deps import get_store
from backend.models.notification import NotificationFeedResponse
from backend.models.session import SessionContext
from backend.services.notifications import NotificationActions, notifications_path, to_notification
from engine.recordsync.store_client import normalize_document
from engine.recordsync.transport import DocumentNotFound, DocumentStore
from engine.recordsync.types import CREATED_AT, OrderSpec, Query

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", status_code=200)
async def list_notifications(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> NotificationFeedResponse:
    """The newest notifications, as the header bell shows them."""
    docs = await store.fetch(
        Query(
            collection=notifications_path(session.user_id),
            order=OrderSpec(CREATED_AT, "desc"),
            limit=settings.NOTIFICATION_FEED_LIMIT,
        )
    )
    items = [n for n in (to_notification(normalize_document(d)) for d in docs) if n is not None]
    return NotificationFeedResponse(notifications=items, unread_count=sum(1 for n in items if not n.isRead))


@router.post("/read-all", status_code=200)
async def mark_all_read(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> dict[str, int]:
    count = await NotificationActions(store).mark_all_as_read(session.user_id)
    return {"count": count}


@router.post("/{notification_id}/read", status_code=204)
async def mark_read(
    notification_id: str,
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> Response:
    try:
        await NotificationActions(store).mark_as_read(session.user_id, notification_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.") from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
