"""Notification models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Actor(BaseModel):
    """Who caused a notification."""

    id: str
    name: str = ""
    avatarUrl: str | None = None


class Notification(BaseModel):
    """One entry under users/{uid}/notifications."""

    id: str
    userId: str = ""
    title: str
    description: str = ""
    href: str = "/"
    isRead: bool = False
    createdAt: datetime | None = None
    actor: Actor | None = None


class NotificationFeedResponse(BaseModel):
    notifications: list[Notification]
    unread_count: int
