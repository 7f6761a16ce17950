from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class MessageType(str, Enum):
    TEXT = "text"
    FILE = "file"
    IMAGE = "image"
    SYSTEM = "system"


class Message(Base):
    """Append-only chat message.

    ``seq`` numbers messages within a room in insertion order and breaks
    ``created_at`` ties on read.
    """

    __tablename__ = "message"
    __table_args__ = (UniqueConstraint("room_id", "seq", name="uq_message_room_seq"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    room_id = Column(
        UUIDType,
        ForeignKey("chat_room.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id = Column(
        UUIDType,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=True,
    )
    seq = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, default="")
    message_type = Column(String(20), nullable=False, default=MessageType.TEXT.value)
    file_url = Column(String(2048), nullable=True)
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    reply_to_id = Column(
        UUIDType,
        ForeignKey("message.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_edited = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
