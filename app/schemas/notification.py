"""Notification schemas."""

from datetime import datetime

from pydantic import Field

from app.schemas.common import BaseSchema


class NotificationCreate(BaseSchema):
    """Notification creation schema (internal use)."""

    user_id: int
    sender_id: int | None = None
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    notification_type: str = Field(..., min_length=1, max_length=50)
    reference_id: int | None = None


class NotificationResponse(BaseSchema):
    """Notification response schema."""

    id: int
    user_id: int
    sender_id: int | None
    title: str
    message: str
    notification_type: str
    reference_id: int | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime


class NotificationFilter(BaseSchema):
    """Notification filtering options."""

    is_read: bool | None = None
    notification_type: str | None = None


class NotificationMarkRead(BaseSchema):
    """Mark notifications as read."""

    notification_ids: list[int]


class NotificationStats(BaseSchema):
    """Notification statistics."""

    total: int
    unread: int
    read: int
