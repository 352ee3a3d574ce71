"""
Chat — direct rooms, messages and read receipts.

Rooms live in chatRooms (id = sorted participant ids joined by "_"),
messages under chatRooms/{room}/messages. The room list keeps one
last-message subscription per room; those child subscriptions belong to a
SubscriptionGroup so they are replaced in step with the room list and torn
down with it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial

from pydantic import ValidationError

from backend.config import settings
from backend.models.chat import ChatMessage, RoomResponse, RoomSummary
from backend.models.session import SessionContext
from backend.services.notifications import NotificationActions
from engine.recordsync.store_client import RecordStoreClient, Subscription, SubscriptionGroup
from engine.recordsync.transport import SERVER_TIMESTAMP, ArrayUnion, DocumentStore, WriteOp
from engine.recordsync.types import (
    CREATED_AT,
    OrderSpec,
    Record,
    RecordSet,
    RecordSetChanged,
    SubscriptionEvent,
    Where,
)

logger = logging.getLogger(__name__)

ROOMS = "chatRooms"


def messages_path(room_id: str) -> str:
    return f"{ROOMS}/{room_id}/messages"


def room_id_for(user_a: str, user_b: str) -> str:
    return "_".join(sorted([user_a, user_b]))


def to_message(record: Record) -> ChatMessage | None:
    try:
        return ChatMessage.model_validate({**record.fields, "id": record.id, "createdAt": record.created_at})
    except ValidationError as e:
        logger.warning("chat: skipping malformed message %s: %s", record.id, e.error_count())
        return None


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class ChatActions:
    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationActions | None = None,
        global_room_id: str | None = None,
    ):
        self.store = store
        self.notifications = notifications or NotificationActions(store)
        self.global_room_id = global_room_id or settings.GLOBAL_CHAT_ROOM_ID

    async def get_or_create_room(self, user_id: str, other_user_id: str) -> RoomResponse:
        room_id = room_id_for(user_id, other_user_id)
        existing = await self.store.get(ROOMS, room_id)
        if existing is not None:
            return RoomResponse(room_id=room_id, participants=existing.data.get("participants", []))

        participants = [user_id, other_user_id]
        await self.store.set(ROOMS, room_id, {"participants": participants, "createdAt": SERVER_TIMESTAMP})
        logger.info("chat: created room %s", room_id)
        return RoomResponse(room_id=room_id, participants=participants)

    async def send_message(
        self,
        room_id: str,
        sender: SessionContext,
        text: str,
        receiver_id: str | None = None,
    ) -> str:
        """
        Post a message. The receiver gets a notification unless this is the
        global room.

        Raises:
            ValueError: text is blank, or receiver_id is not a participant of the room
        """
        text = text.strip()
        if not text:
            raise ValueError("message text is empty")
        if room_id != self.global_room_id and receiver_id:
            room = await self.store.get(ROOMS, room_id)
            participants = (room.data.get("participants") or []) if room is not None else []
            if receiver_id not in participants:
                raise ValueError(f"{receiver_id} is not a participant of this room")

        message_id = await self.store.add(
            messages_path(room_id),
            {
                "text": text,
                "senderId": sender.user_id,
                "senderName": sender.display_name,
                "senderAvatarUrl": sender.avatar_url,
                "createdAt": SERVER_TIMESTAMP,
                "readBy": [sender.user_id],
            },
        )

        if room_id != self.global_room_id and receiver_id:
            await self.notifications.create_notification(
                receiver_id,
                title=f"New message from {sender.display_name}",
                description=text,
                href="/chats",
                actor={"id": sender.user_id, "name": sender.display_name, "avatarUrl": sender.avatar_url},
            )
        return message_id

    async def mark_read(self, room_id: str, message_id: str, user_id: str) -> None:
        """Raises DocumentNotFound when the message does not exist."""
        await self.store.update(messages_path(room_id), message_id, {"readBy": ArrayUnion(user_id)})

    async def mark_many_read(self, room_id: str, message_ids: list[str], user_id: str) -> None:
        if not message_ids:
            return
        path = messages_path(room_id)
        await self.store.commit([WriteOp("update", path, mid, {"readBy": ArrayUnion(user_id)}) for mid in message_ids])


# ---------------------------------------------------------------------------
# Room list
# ---------------------------------------------------------------------------


class ChatRoomList:
    """The rooms a user takes part in, each with its newest message."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        on_change: Callable[[ChatRoomList], None] | None = None,
    ):
        self.user_id = user_id
        self.on_change = on_change
        self.rooms: RecordSet = ()
        self.last_messages: dict[str, ChatMessage | None] = {}
        self.error: str | None = None
        self._client = RecordStoreClient(store)
        self._subscription: Subscription | None = None
        self._children = SubscriptionGroup()

    def mount(self) -> None:
        if self._subscription is not None and self._subscription.active:
            return
        self._subscription = self._client.subscribe(
            ROOMS,
            where=Where("participants", "array-contains", self.user_id),
            listener=self._on_rooms,
        )

    def unmount(self) -> None:
        """Tear down the room subscription, then every last-message child."""
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()
        self._children.close_all()
        self.last_messages.clear()

    @property
    def child_count(self) -> int:
        return len(self._children)

    def _on_rooms(self, event: SubscriptionEvent) -> None:
        if not isinstance(event, RecordSetChanged):
            self.error = event.message
            self._changed()
            return
        self.rooms = event.records
        self.error = None
        keys = [r.id for r in event.records]
        for gone in set(self.last_messages) - set(keys):
            del self.last_messages[gone]
        self._children.sync(keys, self._open_room)
        self._changed()

    def _open_room(self, room_id: str) -> Subscription:
        return self._client.subscribe(
            messages_path(room_id),
            OrderSpec(CREATED_AT, "desc"),
            limit=1,
            listener=partial(self._on_last_message, room_id),
        )

    def _on_last_message(self, room_id: str, event: SubscriptionEvent) -> None:
        if not isinstance(event, RecordSetChanged):
            logger.warning("chat: last message for %s unavailable: %s", room_id, event.message)
            return
        self.last_messages[room_id] = to_message(event.records[0]) if event.records else None
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def summaries(self) -> list[RoomSummary]:
        """Rooms by newest message first; rooms without messages last."""
        items = [
            RoomSummary(
                room_id=r.id,
                participants=list(r.get("participants") or []),
                last_message=self.last_messages.get(r.id),
            )
            for r in self.rooms
        ]
        active = [s for s in items if s.last_activity is not None]
        idle = [s for s in items if s.last_activity is None]
        active.sort(key=lambda s: s.last_activity, reverse=True)
        return active + idle


# ---------------------------------------------------------------------------
# Room window
# ---------------------------------------------------------------------------


class ChatWindow:
    """One open room: its messages oldest first, plus read receipts."""

    def __init__(
        self,
        actions: ChatActions,
        room_id: str,
        user_id: str,
        on_change: Callable[[ChatWindow], None] | None = None,
    ):
        self.actions = actions
        self.room_id = room_id
        self.user_id = user_id
        self.on_change = on_change
        self.messages: list[ChatMessage] = []
        self.error: str | None = None
        self._client = RecordStoreClient(actions.store)
        self._subscription: Subscription | None = None

    def mount(self) -> None:
        if self._subscription is not None and self._subscription.active:
            return
        self._subscription = self._client.subscribe(
            messages_path(self.room_id),
            OrderSpec(CREATED_AT, "asc"),
            listener=self._on_event,
        )

    def unmount(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()

    def _on_event(self, event: SubscriptionEvent) -> None:
        if isinstance(event, RecordSetChanged):
            self.messages = [m for m in (to_message(r) for r in event.records) if m is not None]
            self.error = None
        else:
            self.error = event.message
        if self.on_change is not None:
            self.on_change(self)

    @property
    def unread(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.is_unread_for(self.user_id)]

    async def mark_read(self) -> int:
        """Mark every message from others this user has not read. Returns how many."""
        ids = [m.id for m in self.unread]
        await self.actions.mark_many_read(self.room_id, ids, self.user_id)
        return len(ids)
