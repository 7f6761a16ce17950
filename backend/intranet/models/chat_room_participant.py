from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class ParticipantRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class ChatRoomParticipant(Base):
    """Membership of an employee in a room.

    Removal flips ``is_active``; rows stay so message attribution survives.
    """

    __tablename__ = "chat_room_participant"
    __table_args__ = (
        UniqueConstraint("room_id", "employee_id", name="uq_chat_room_participant_room_employee"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    room_id = Column(
        UUIDType,
        ForeignKey("chat_room.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        UUIDType,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    role = Column(String(20), nullable=False, default=ParticipantRole.MEMBER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    last_read_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
