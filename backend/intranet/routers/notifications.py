"""Notification API endpoints."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from intranet.core.auth import get_current_employee
from intranet.core.database import get_db
from intranet.core.errors import PermissionDenied
from intranet.models.employee import Employee
from intranet.repositories.notification_repository import NotificationRepository
from intranet.schemas.notification import (
    AnnouncementCreate,
    FanOutResponse,
    NotificationCountResponse,
    NotificationResponse,
    NotificationsUpdatedResponse,
)
from intranet.services.notification_service import NotificationService
from intranet.services.permission_service import derive_permissions
from intranet.tasks import enqueue_fan_out_notifications
from intranet.worker import fan_out_notifications_task

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/",
    response_model=list[NotificationResponse],
    summary="List notifications",
    responses={401: {"description": "Unauthorized – invalid or missing access token"}},
)
async def list_notifications(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    type: str | None = None,
    is_read: bool | None = None,
    order_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> list[NotificationResponse]:
    """List the caller's notifications with optional filters."""
    repo = NotificationRepository(db)
    notifications = repo.get_all(
        user_id=employee.id,  # type: ignore[arg-type]
        skip=skip,
        limit=limit,
        type=type,
        is_read=is_read,
        order_by=order_by,
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get(
    "/unread_count",
    response_model=NotificationCountResponse,
    summary="Get unread notification count",
    responses={401: {"description": "Unauthorized – invalid or missing access token"}},
)
async def get_unread_count(
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> NotificationCountResponse:
    repo = NotificationRepository(db)
    count = repo.count_unread(employee.id)  # type: ignore[arg-type]
    return NotificationCountResponse(unread_count=count)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        404: {"description": "Notification not found"},
    },
)
async def mark_as_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> NotificationResponse:
    """Mark one of the caller's notifications as read."""
    service = NotificationService(db)
    try:
        notification = service.mark_as_read(notification_id, employee)
    except PermissionDenied:
        notification = None
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse.model_validate(notification)


@router.post(
    "/read_all",
    response_model=NotificationsUpdatedResponse,
    summary="Mark all notifications as read",
    responses={401: {"description": "Unauthorized – invalid or missing access token"}},
)
async def mark_all_as_read(
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> NotificationsUpdatedResponse:
    """Mark all unread notifications as read; returns how many changed."""
    repo = NotificationRepository(db)
    count = repo.mark_all_as_read(employee.id)  # type: ignore[arg-type]
    return NotificationsUpdatedResponse(updated=count)


async def _enqueue_announcement(**kwargs: Any) -> None:
    """Queue a hospital-wide fan-out, delivering it in-process if the queue is down."""
    try:
        await enqueue_fan_out_notifications(**kwargs)
    except Exception:
        logger.exception("Failed to enqueue announcement fan-out; delivering in-process")
        await fan_out_notifications_task(
            {},
            hospital_id=str(kwargs["hospital_id"]),
            type=kwargs["type"],
            title=kwargs["title"],
            message=kwargs["message"],
            actor_id=str(kwargs["actor_id"]),
            related_id=kwargs.get("related_id"),
        )


@router.post(
    "/announce",
    response_model=FanOutResponse,
    status_code=201,
    summary="Send an announcement",
    responses={
        202: {"description": "Hospital-wide announcement queued for delivery"},
        401: {"description": "Unauthorized – invalid or missing access token"},
        403: {"description": "Only managers can send announcements"},
    },
)
async def announce(
    data: AnnouncementCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> FanOutResponse:
    """Notify the listed employees, or queue a fan-out to the caller's whole hospital."""
    if not derive_permissions(employee).is_manager:
        raise HTTPException(status_code=403, detail="Only managers can send announcements")

    if data.user_ids is None:
        background_tasks.add_task(
            _enqueue_announcement,
            hospital_id=employee.hospital_id,
            type=data.type.value,
            title=data.title,
            message=data.message,
            actor_id=employee.id,
            related_id=data.related_id,
        )
        response.status_code = 202
        return FanOutResponse(created=0, queued=True)

    created = NotificationService(db).announce(
        actor=employee,
        title=data.title,
        message=data.message,
        user_ids=data.user_ids,
        type=data.type.value,
        related_id=data.related_id,
    )
    return FanOutResponse(created=created)
