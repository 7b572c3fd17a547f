"""Notification service and result notification helpers."""

import logging
from datetime import datetime, timezone

from sqlalchemy import Integer, cast, func, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.notification import Notification
from app.models.result import Result
from app.models.user import User, UserRole
from app.schemas.notification import (
    NotificationCreate,
    NotificationFilter,
    NotificationResponse,
    NotificationStats,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notification service."""

    def __init__(self, db: Session):
        self.db = db

    def create_notification(self, request: NotificationCreate) -> Notification:
        """Create a new notification."""
        notification = Notification(
            user_id=request.user_id,
            sender_id=request.sender_id,
            title=request.title,
            message=request.message,
            notification_type=request.notification_type,
            reference_id=request.reference_id,
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def get_notification(self, notification_id: int, user_id: int) -> Notification:
        """Get notification by ID (must belong to user)."""
        result = self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification", str(notification_id))
        return notification

    def list_notifications(
        self,
        user_id: int,
        filters: NotificationFilter | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[NotificationResponse], int]:
        """List notifications for a user, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)

        if filters:
            if filters.is_read is not None:
                query = query.where(Notification.is_read == filters.is_read)
            if filters.notification_type:
                query = query.where(Notification.notification_type == filters.notification_type)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar() or 0

        query = (
            query
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        notifications = self.db.execute(query).scalars().all()

        return [NotificationResponse.model_validate(n) for n in notifications], total

    def mark_as_read(self, notification_ids: list[int], user_id: int) -> int:
        """Mark notifications as read. Returns count of updated."""
        result = self.db.execute(
            update(Notification)
            .where(
                Notification.id.in_(notification_ids),
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        self.db.flush()
        return result.rowcount

    def mark_all_as_read(self, user_id: int) -> int:
        """Mark all notifications as read for a user."""
        result = self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        self.db.flush()
        return result.rowcount

    def get_stats(self, user_id: int) -> NotificationStats:
        """Get notification statistics for a user."""
        row = self.db.execute(
            select(
                func.count().label("total"),
                func.sum(cast(Notification.is_read.is_(False), Integer)).label("unread"),
            ).where(Notification.user_id == user_id)
        ).one()

        total = row.total or 0
        unread = row.unread or 0
        return NotificationStats(total=total, unread=unread, read=total - unread)

    def delete_notification(self, notification_id: int, user_id: int) -> None:
        """Delete a notification."""
        notification = self.get_notification(notification_id, user_id)
        self.db.delete(notification)
        self.db.flush()


# ==========================================
# Result notifications
# ==========================================

def _admin_ids(db: Session) -> list[int]:
    result = db.execute(
        select(User.id).where(User.role == UserRole.ADMIN, User.is_active.is_(True))
    )
    return list(result.scalars().all())


def _send(
    db: Session,
    recipient_id: int,
    actor: User | None,
    title: str,
    message: str,
    notification_type: str,
    reference_id: int | None,
) -> None:
    logger.debug(f"Queueing {notification_type} notification for user {recipient_id}")
    NotificationService(db).create_notification(
        NotificationCreate(
            user_id=recipient_id,
            sender_id=actor.id if actor else None,
            title=title,
            message=message,
            notification_type=notification_type,
            reference_id=reference_id,
        )
    )


def notify_result_created(db: Session, result: Result, actor: User | None) -> None:
    """Tell the student and every admin that a result was entered."""
    student = result.student
    author = actor.name if actor else "system"

    if student.user_id:
        _send(
            db,
            student.user_id,
            actor,
            "New Result Added",
            f"A new result has been added for {result.subject.name} in {result.term.name}. "
            f"Score: {result.total_score}",
            "result",
            result.id,
        )

    for admin_id in _admin_ids(db):
        _send(
            db,
            admin_id,
            actor,
            "New Result Entry",
            f"A new result has been entered by {author} for {student.student_name} "
            f"in {result.subject.name}",
            "result_entry",
            result.id,
        )


def notify_result_updated(db: Session, result: Result, actor: User | None) -> None:
    """Tell the student their score changed."""
    student = result.student
    if not student.user_id:
        return
    _send(
        db,
        student.user_id,
        actor,
        "Result Updated",
        f"Your result for {result.subject.name} in {result.term.name} has been updated. "
        f"New score: {result.total_score}",
        "result_update",
        result.id,
    )


def notify_result_deleted(
    db: Session,
    student_user_id: int | None,
    subject_name: str,
    term_name: str,
    actor: User | None,
) -> None:
    """Tell the student a result was removed. No reference: the row is gone."""
    if not student_user_id:
        return
    _send(
        db,
        student_user_id,
        actor,
        "Result Removed",
        f"A result for {subject_name} in {term_name} has been removed",
        "result_delete",
        None,
    )
