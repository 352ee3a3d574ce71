"""Chat models: rooms, messages, and their request bodies."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateRoomRequest(BaseModel):
    """What the client sends to open a direct chat with another user."""

    model_config = {"extra": "forbid"}

    other_user_id: str = Field(min_length=1)


class RoomResponse(BaseModel):
    room_id: str
    participants: list[str]


class SendChatMessageRequest(BaseModel):
    """What the client sends to post a message to a room."""

    model_config = {"extra": "forbid"}

    text: str = Field(min_length=1, max_length=10000)
    receiver_id: str | None = None


class ChatMessage(BaseModel):
    """One message as stored under chatRooms/{room}/messages."""

    id: str
    text: str
    senderId: str
    senderName: str = "Unknown User"
    senderAvatarUrl: str | None = None
    createdAt: datetime | None = None
    readBy: list[str] = Field(default_factory=list)

    def is_unread_for(self, user_id: str) -> bool:
        return self.senderId != user_id and user_id not in self.readBy


class RoomSummary(BaseModel):
    """A room as the room list shows it: participants plus its newest message."""

    room_id: str
    participants: list[str]
    last_message: ChatMessage | None = None

    @property
    def last_activity(self) -> datetime | None:
        return self.last_message.createdAt if self.last_message else None
