from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class ChatRoomType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"
    DEPARTMENT = "department"
    PROJECT = "project"


class ChatRoom(Base):
    __tablename__ = "chat_room"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    type = Column(String(20), nullable=False, default=ChatRoomType.GROUP.value)
    hospital_id = Column(
        UUIDType,
        ForeignKey("hospitals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    department_id = Column(
        UUIDType,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    creator_id = Column(
        UUIDType,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
    )
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
