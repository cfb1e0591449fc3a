from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from qms.db.enums import NotificationType


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    link: str | None
    related_id: UUID | None
    related_type: str | None
    is_read: bool
    read_at: datetime | None
    email_sent: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationPage(BaseModel):
    items: list[NotificationOut]
    page: int
    limit: int
    total: int
    pages: int
    unread_count: int


class UnreadCount(BaseModel):
    count: int


class MarkAllReadOut(BaseModel):
    updated: int
