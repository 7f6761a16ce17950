import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from arq import cron

from intranet.core import database
from intranet.core.config import settings
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.repositories.notification_repository import NotificationRepository
from intranet.services.notification_service import NotificationService
from intranet.tasks import redis_settings

logger = logging.getLogger(__name__)


async def fan_out_notifications_task(
    ctx: dict[str, Any],
    *,
    hospital_id: str,
    type: str,
    title: str,
    message: str,
    user_ids: list[str] | None = None,
    actor_id: str | None = None,
    related_id: str | None = None,
) -> int:
    """Background task: insert one notification per recipient.

    Without explicit recipients every active employee of the hospital is
    notified; explicit recipients outside the hospital are skipped. The actor
    never receives their own notification.
    """
    db = database.new_session()
    try:
        hospital_uuid = UUID(hospital_id)
        if user_ids is None:
            employees = EmployeeRepository(db).get_active_by_hospital(hospital_uuid)
            recipients = [e.id for e in employees]
        else:
            wanted = [UUID(u) for u in user_ids]
            recipients = [e.id for e in EmployeeRepository(db).get_many(wanted, hospital_uuid)]
        count = NotificationService(db).notify_many(
            user_ids=recipients,  # type: ignore[arg-type]
            hospital_id=hospital_uuid,
            type=type,
            title=title,
            message=message,
            related_id=related_id,
            actor_id=UUID(actor_id) if actor_id else None,
        )
        return count
    finally:
        db.close()


async def purge_read_notifications_task(ctx: dict[str, Any]) -> int:
    """Background task: delete read notifications older than the retention window.

    Runs daily.
    """
    db = database.new_session()
    try:
        cutoff = datetime.now(UTC) - timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)
        count = NotificationRepository(db).delete_read_before(cutoff)
        if count > 0:
            logger.info("Purged %d read notifications older than %s", count, cutoff.date())
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [
        fan_out_notifications_task,
        purge_read_notifications_task,
    ]
    cron_jobs = [
        cron(purge_read_notifications_task, hour=3, minute=0),  # daily at 03:00
    ]
    redis_settings = redis_settings
