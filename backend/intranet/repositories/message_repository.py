"""Repository for Message rows and their sender join."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from intranet.models.chat_room import ChatRoom
from intranet.models.employee import Employee
from intranet.models.message import Message, MessageType
from intranet.models.shared import utc_now


class MessageRepository:
    def __init__(self, db: Session):
        self.db = db

    def _next_seq(self, room_id: UUID) -> int:
        # Row lock on the room serializes seq allocation until commit.
        self.db.query(ChatRoom.id).filter(ChatRoom.id == room_id).with_for_update().first()
        current = (
            self.db.query(func.max(Message.seq)).filter(Message.room_id == room_id).scalar()
        )
        return int(current or 0) + 1

    def create(
        self,
        *,
        room_id: UUID,
        sender_id: UUID | None,
        content: str,
        message_type: str = MessageType.TEXT.value,
        file_url: str | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        reply_to_id: UUID | None = None,
    ) -> Message:
        """Append a message and bump the room's ``updated_at``.

        Concurrent senders to one room wait on the room row lock, so each
        gets the next ``seq``.
        """
        now = utc_now()
        message = Message(
            room_id=room_id,
            sender_id=sender_id,
            seq=self._next_seq(room_id),
            content=content,
            message_type=message_type,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            reply_to_id=reply_to_id,
            is_edited=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(message)
        self.db.query(ChatRoom).filter(ChatRoom.id == room_id).update({"updated_at": now})
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_by_id(self, message_id: UUID) -> Message | None:
        return self.db.query(Message).filter(Message.id == message_id).first()

    def get_with_sender(self, message_id: UUID) -> tuple[Message, Employee | None] | None:
        row = (
            self.db.query(Message, Employee)
            .outerjoin(Employee, Employee.id == Message.sender_id)
            .filter(Message.id == message_id)
            .first()
        )
        if row is None:
            return None
        return row[0], row[1]

    def get_for_room(self, room_id: UUID, limit: int = 50) -> list[tuple[Message, Employee | None]]:
        """Return the newest ``limit`` messages in ascending order."""
        rows = (
            self.db.query(Message, Employee)
            .outerjoin(Employee, Employee.id == Message.sender_id)
            .filter(Message.room_id == room_id)
            .order_by(Message.created_at.desc(), Message.seq.desc())
            .limit(limit)
            .all()
        )
        return [(message, sender) for message, sender in reversed(rows)]

    def count_after(self, room_id: UUID, since: datetime) -> int:
        return (
            self.db.query(Message)
            .filter(Message.room_id == room_id, Message.created_at > since)
            .count()
        )

    def update_content(self, message: Message, content: str) -> Message:
        message.content = content  # type: ignore[assignment]
        message.is_edited = True  # type: ignore[assignment]
        message.updated_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(message)
        return message
