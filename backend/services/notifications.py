"""
Notifications — per-user notification writes and the live feed.

Notifications live under users/{uid}/notifications. The feed shows the
newest few, counts the unread ones and fires a hook when a new unread one
arrives (the header bell uses it to play a sound).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from backend.config import settings
from backend.models.notification import Actor, Notification
from engine.recordsync.store_client import RecordStoreClient, Subscription
from engine.recordsync.transport import SERVER_TIMESTAMP, DocumentStore, WriteOp
from engine.recordsync.types import (
    CREATED_AT,
    OrderSpec,
    Query,
    Record,
    RecordSetChanged,
    SubscriptionEvent,
    Where,
)

logger = logging.getLogger(__name__)


def notifications_path(user_id: str) -> str:
    return f"users/{user_id}/notifications"


def to_notification(record: Record) -> Notification | None:
    """Record → Notification, or None for a document missing required fields."""
    try:
        return Notification.model_validate({**record.fields, "id": record.id, "createdAt": record.created_at})
    except ValidationError as e:
        logger.warning("notifications: skipping malformed notification %s: %s", record.id, e.error_count())
        return None


class NotificationActions:
    """Notification writes."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create_notification(
        self,
        user_id: str,
        title: str,
        description: str = "",
        href: str = "/",
        actor: Actor | dict[str, Any] | None = None,
    ) -> str:
        if isinstance(actor, dict):
            actor = Actor.model_validate(actor)
        data = {
            "userId": user_id,
            "title": title,
            "description": description,
            "href": href,
            "actor": actor.model_dump() if actor else None,
            "isRead": False,
            "createdAt": SERVER_TIMESTAMP,
        }
        notification_id = await self.store.add(notifications_path(user_id), data)
        logger.info("notifications: created %s for %s", notification_id, user_id)
        return notification_id

    async def mark_as_read(self, user_id: str, notification_id: str) -> None:
        """Raises DocumentNotFound when the notification does not exist."""
        await self.store.update(notifications_path(user_id), notification_id, {"isRead": True})

    async def mark_all_as_read(self, user_id: str, notification_ids: list[str] | None = None) -> int:
        """
        Mark notifications read in one batch. Without ids, every unread
        notification of the user is marked. Returns how many were marked.
        """
        path = notifications_path(user_id)
        if notification_ids is None:
            docs = await self.store.fetch(Query(collection=path, where=Where("isRead", "==", False)))
            notification_ids = [d.id for d in docs]
        if not notification_ids:
            return 0
        await self.store.commit([WriteOp("update", path, nid, {"isRead": True}) for nid in notification_ids])
        logger.info("notifications: marked %d read for %s", len(notification_ids), user_id)
        return len(notification_ids)


class NotificationFeed:
    """The newest notifications of one user, kept live."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        *,
        limit: int | None = None,
        on_new_unread: Callable[[Notification], None] | None = None,
        on_change: Callable[[NotificationFeed], None] | None = None,
    ):
        self.user_id = user_id
        self.limit = limit or settings.NOTIFICATION_FEED_LIMIT
        self.actions = NotificationActions(store)
        self.on_new_unread = on_new_unread
        self.on_change = on_change
        self.notifications: list[Notification] = []
        self.error: str | None = None
        self._client = RecordStoreClient(store)
        self._subscription: Subscription | None = None
        self._loaded = False

    def mount(self) -> None:
        if self._subscription is not None and self._subscription.active:
            return
        self._loaded = False
        self._subscription = self._client.subscribe(
            notifications_path(self.user_id),
            OrderSpec(CREATED_AT, "desc"),
            limit=self.limit,
            listener=self._on_event,
        )

    def unmount(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.isRead)

    def _on_event(self, event: SubscriptionEvent) -> None:
        if not isinstance(event, RecordSetChanged):
            self.error = event.message
            self._changed()
            return

        before = self.unread_count
        self.notifications = [n for n in (to_notification(r) for r in event.records) if n is not None]
        self.error = None

        # The first snapshot is history, not news
        if self._loaded and self.unread_count > before and self.on_new_unread is not None:
            newest = next(n for n in self.notifications if not n.isRead)
            self.on_new_unread(newest)
        self._loaded = True
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    async def mark_as_read(self, notification_id: str) -> None:
        await self.actions.mark_as_read(self.user_id, notification_id)

    async def mark_all_as_read(self) -> int:
        """Mark the unread notifications the feed shows."""
        unread = [n.id for n in self.notifications if not n.isRead]
        return await self.actions.mark_all_as_read(self.user_id, unread)
