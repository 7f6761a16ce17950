"""Repository for Notification rows."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from intranet.core.sorting import apply_order_by
from intranet.models.notification import Notification
from intranet.models.shared import utc_now


class NotificationRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        type: str,
        user_id: UUID,
        hospital_id: UUID,
        title: str,
        message: str,
        related_id: str | None = None,
    ) -> Notification:
        notification = Notification(
            type=type,
            user_id=user_id,
            hospital_id=hospital_id,
            title=title,
            message=message,
            related_id=related_id,
            is_read=False,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def create_many(
        self,
        *,
        type: str,
        user_ids: list[UUID],
        hospital_id: UUID,
        title: str,
        message: str,
        related_id: str | None = None,
    ) -> int:
        """Insert one row per recipient in a single transaction."""
        rows = [
            Notification(
                type=type,
                user_id=user_id,
                hospital_id=hospital_id,
                title=title,
                message=message,
                related_id=related_id,
                is_read=False,
            )
            for user_id in user_ids
        ]
        if not rows:
            return 0
        self.db.add_all(rows)
        self.db.commit()
        return len(rows)

    def get_by_id(self, notification_id: UUID) -> Notification | None:
        return (
            self.db.query(Notification)
            .filter(Notification.id == notification_id)
            .first()
        )

    def get_all(
        self,
        user_id: UUID,
        skip: int = 0,
        limit: int = 50,
        type: str | None = None,
        is_read: bool | None = None,
        order_by: str | None = None,
    ) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if type is not None:
            query = query.filter(Notification.type == type)
        if is_read is not None:
            query = query.filter(Notification.is_read == is_read)
        query = apply_order_by(query, Notification, order_by)
        return query.offset(skip).limit(limit).all()

    def count_unread(self, user_id: UUID) -> int:
        return (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
            .count()
        )

    def mark_as_read(self, notification: Notification) -> Notification:
        notification.is_read = True  # type: ignore[assignment]
        notification.read_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_as_read(self, user_id: UUID) -> int:
        count = (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
            .update({"is_read": True, "read_at": utc_now()})
        )
        self.db.commit()
        return count

    def delete_read_before(self, cutoff: datetime) -> int:
        count = (
            self.db.query(Notification)
            .filter(
                Notification.is_read == True,  # noqa: E712
                Notification.read_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return count
