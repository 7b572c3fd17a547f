"""Notification endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import CurrentUser
from app.schemas.common import MessageResponse, PaginatedResponse
from app.schemas.notification import (
    NotificationFilter,
    NotificationMarkRead,
    NotificationResponse,
    NotificationStats,
)
from app.services.notification import NotificationService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[NotificationResponse])
def list_notifications(
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
    is_read: bool | None = None,
    notification_type: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """
    List notifications for the current user.
    """
    filters = NotificationFilter(is_read=is_read, notification_type=notification_type)
    notifications, total = NotificationService(db).list_notifications(
        user_id=user.id,
        filters=filters,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse.build(notifications, total, page, page_size)


@router.get("/stats", response_model=NotificationStats)
def get_notification_stats(user: CurrentUser, db: Annotated[Session, Depends(get_db)]):
    return NotificationService(db).get_stats(user.id)


@router.post("/mark-read", response_model=MessageResponse)
def mark_notifications_read(
    request: NotificationMarkRead,
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    count = NotificationService(db).mark_as_read(request.notification_ids, user.id)
    return MessageResponse(message=f"Marked {count} notifications as read")


@router.post("/mark-all-read", response_model=MessageResponse)
def mark_all_notifications_read(user: CurrentUser, db: Annotated[Session, Depends(get_db)]):
    count = NotificationService(db).mark_all_as_read(user.id)
    return MessageResponse(message=f"Marked {count} notifications as read")


@router.delete("/{notification_id}", response_model=MessageResponse)
def delete_notification(
    notification_id: int,
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
):
    NotificationService(db).delete_notification(notification_id, user.id)
    return MessageResponse(message="Notification deleted")
