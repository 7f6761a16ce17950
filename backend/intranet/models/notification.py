"""Notification model for the in-app notification feed."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class NotificationType(str, Enum):
    TASK = "task"
    SCHEDULE = "schedule"
    FILE = "file"
    SYSTEM = "system"
    ANNOUNCEMENT = "announcement"
    MESSAGE = "message"


class Notification(Base):
    """One row per (event, recipient)."""

    __tablename__ = "notifications"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    type = Column(String(20), nullable=False, index=True)
    user_id = Column(
        UUIDType,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    hospital_id = Column(
        UUIDType,
        ForeignKey("hospitals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    related_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
