"""Repository for ChatRoom rows."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from intranet.models.chat_room import ChatRoom
from intranet.models.chat_room_participant import ChatRoomParticipant, ParticipantRole
from intranet.models.shared import utc_now


class ChatRoomRepository:
    def __init__(self, db: Session):
        self.db = db

    def create_with_participants(
        self,
        *,
        name: str,
        type: str,
        hospital_id: UUID,
        creator_id: UUID,
        participant_ids: list[UUID],
        description: str | None = None,
        department_id: UUID | None = None,
    ) -> tuple[ChatRoom, list[ChatRoomParticipant]]:
        """Insert a room and its participant rows in one transaction.

        The creator is stored with the ``admin`` role; ``participant_ids``
        must already be de-duplicated and exclude the creator.
        """
        room = ChatRoom(
            name=name,
            type=type,
            description=description,
            hospital_id=hospital_id,
            department_id=department_id,
            creator_id=creator_id,
            is_active=True,
        )
        self.db.add(room)
        self.db.flush()

        participants = [
            ChatRoomParticipant(
                room_id=room.id,
                employee_id=creator_id,
                role=ParticipantRole.ADMIN.value,
            )
        ]
        participants.extend(
            ChatRoomParticipant(
                room_id=room.id,
                employee_id=employee_id,
                role=ParticipantRole.MEMBER.value,
            )
            for employee_id in participant_ids
        )
        self.db.add_all(participants)
        self.db.commit()
        self.db.refresh(room)
        for participant in participants:
            self.db.refresh(participant)
        return room, participants

    def get_by_id(self, room_id: UUID) -> ChatRoom | None:
        return self.db.query(ChatRoom).filter(ChatRoom.id == room_id).first()

    def get_for_employee(self, employee_id: UUID) -> list[ChatRoom]:
        """Active rooms in which the employee is an active participant."""
        return (
            self.db.query(ChatRoom)
            .join(ChatRoomParticipant, ChatRoomParticipant.room_id == ChatRoom.id)
            .filter(
                ChatRoomParticipant.employee_id == employee_id,
                ChatRoomParticipant.is_active == True,  # noqa: E712
                ChatRoom.is_active == True,  # noqa: E712
            )
            .order_by(ChatRoom.updated_at.desc())
            .all()
        )

    def update(
        self,
        room: ChatRoom,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> ChatRoom:
        if name is not None:
            room.name = name  # type: ignore[assignment]
        if description is not None:
            room.description = description  # type: ignore[assignment]
        room.updated_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(room)
        return room

    def deactivate(self, room: ChatRoom) -> ChatRoom:
        room.is_active = False  # type: ignore[assignment]
        room.updated_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(room)
        return room
