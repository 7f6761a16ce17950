"""Repository for ChatRoomParticipant rows."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from intranet.models.chat_room_participant import ChatRoomParticipant, ParticipantRole


class ParticipantRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, room_id: UUID, employee_id: UUID) -> ChatRoomParticipant | None:
        return (
            self.db.query(ChatRoomParticipant)
            .filter(
                ChatRoomParticipant.room_id == room_id,
                ChatRoomParticipant.employee_id == employee_id,
            )
            .first()
        )

    def get_active(self, room_id: UUID, employee_id: UUID) -> ChatRoomParticipant | None:
        participant = self.get(room_id, employee_id)
        if participant is None or not participant.is_active:
            return None
        return participant

    def get_for_room(self, room_id: UUID, active_only: bool = True) -> list[ChatRoomParticipant]:
        query = self.db.query(ChatRoomParticipant).filter(ChatRoomParticipant.room_id == room_id)
        if active_only:
            query = query.filter(ChatRoomParticipant.is_active == True)  # noqa: E712
        return query.order_by(ChatRoomParticipant.joined_at.asc()).all()

    def add_or_reactivate(
        self,
        room_id: UUID,
        employee_ids: list[UUID],
        role: str = ParticipantRole.MEMBER.value,
    ) -> list[ChatRoomParticipant]:
        """Add members, flipping soft-removed rows back to active."""
        touched: list[ChatRoomParticipant] = []
        for employee_id in employee_ids:
            participant = self.get(room_id, employee_id)
            if participant is None:
                participant = ChatRoomParticipant(
                    room_id=room_id,
                    employee_id=employee_id,
                    role=role,
                    is_active=True,
                )
                self.db.add(participant)
            elif not participant.is_active:
                participant.is_active = True  # type: ignore[assignment]
                participant.role = role  # type: ignore[assignment]
            else:
                continue
            touched.append(participant)
        self.db.commit()
        for participant in touched:
            self.db.refresh(participant)
        return touched

    def deactivate(self, participant: ChatRoomParticipant) -> ChatRoomParticipant:
        participant.is_active = False  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(participant)
        return participant

    def set_role(self, participant: ChatRoomParticipant, role: str) -> ChatRoomParticipant:
        participant.role = role  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(participant)
        return participant

    def touch_last_read(self, room_id: UUID, employee_id: UUID, when: datetime) -> bool:
        count = (
            self.db.query(ChatRoomParticipant)
            .filter(
                ChatRoomParticipant.room_id == room_id,
                ChatRoomParticipant.employee_id == employee_id,
            )
            .update({"last_read_at": when})
        )
        self.db.commit()
        return count > 0
