"""Pydantic schemas for Notification."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from intranet.models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: UUID
    type: str
    user_id: UUID
    hospital_id: UUID
    title: str
    message: str
    is_read: bool
    read_at: datetime | None
    related_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationCountResponse(BaseModel):
    unread_count: int


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=1000)
    user_ids: list[UUID] | None = None
    related_id: str | None = Field(default=None, max_length=64)
    type: NotificationType = NotificationType.ANNOUNCEMENT


class FanOutResponse(BaseModel):
    created: int
    queued: bool = False


class NotificationsUpdatedResponse(BaseModel):
    updated: int
