"""Service for creating in-app notifications from intranet events."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from intranet.core.errors import PermissionDenied
from intranet.models.employee import Employee
from intranet.models.notification import Notification, NotificationType
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)


def unique_recipients(user_ids: Iterable[UUID], actor_id: UUID | None = None) -> list[UUID]:
    """De-duplicate recipients, keep their order and drop the actor."""
    seen: list[UUID] = []
    for user_id in user_ids:
        if user_id == actor_id or user_id in seen:
            continue
        seen.append(user_id)
    return seen


class NotificationService:
    """One notification row per (event, recipient)."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository(db)
        self.employee_repo = EmployeeRepository(db)

    def notify_many(
        self,
        *,
        user_ids: Iterable[UUID],
        hospital_id: UUID,
        type: str,
        title: str,
        message: str,
        related_id: str | None = None,
        actor_id: UUID | None = None,
    ) -> int:
        """Fan one event out to many recipients, excluding the actor."""
        recipients = unique_recipients(user_ids, actor_id)
        count = self.repo.create_many(
            type=type,
            user_ids=recipients,
            hospital_id=hospital_id,
            title=title,
            message=message,
            related_id=related_id,
        )
        logger.info("Created %d %s notifications in hospital %s", count, type, hospital_id)
        return count

    def notify_file_shared(
        self,
        *,
        recipient_ids: Iterable[UUID],
        file_name: str,
        shared_by: Employee,
    ) -> int:
        hospital_id: UUID = shared_by.hospital_id  # type: ignore[assignment]
        recipients = [e.id for e in self.employee_repo.get_many(list(recipient_ids), hospital_id)]
        return self.notify_many(
            user_ids=recipients,  # type: ignore[arg-type]
            hospital_id=hospital_id,
            type=NotificationType.FILE.value,
            title="File shared",
            message=f"{shared_by.name} shared '{file_name}'.",
            actor_id=shared_by.id,  # type: ignore[arg-type]
        )

    def announce(
        self,
        *,
        actor: Employee,
        title: str,
        message: str,
        user_ids: Iterable[UUID],
        type: str = NotificationType.ANNOUNCEMENT.value,
        related_id: str | None = None,
    ) -> int:
        """Notify the given employees of the actor's hospital; others are skipped."""
        hospital_id: UUID = actor.hospital_id  # type: ignore[assignment]
        wanted = list(user_ids)
        recipients = [e.id for e in self.employee_repo.get_many(wanted, hospital_id)]
        return self.notify_many(
            user_ids=recipients,  # type: ignore[arg-type]
            hospital_id=hospital_id,
            type=type,
            title=title,
            message=message,
            related_id=related_id,
            actor_id=actor.id,  # type: ignore[arg-type]
        )

    def mark_as_read(self, notification_id: UUID, reader: Employee) -> Notification | None:
        """Mark one notification read. Only its recipient may do so."""
        notification = self.repo.get_by_id(notification_id)
        if notification is None:
            return None
        if notification.user_id != reader.id:
            raise PermissionDenied("Notifications can only be read by their recipient")
        if notification.is_read:
            return notification
        return self.repo.mark_as_read(notification)
