"""Repository for MessageReaction rows."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from intranet.models.message_reaction import MessageReaction


class MessageReactionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, message_id: UUID, employee_id: UUID, reaction: str) -> MessageReaction | None:
        return (
            self.db.query(MessageReaction)
            .filter(
                MessageReaction.message_id == message_id,
                MessageReaction.employee_id == employee_id,
                MessageReaction.reaction == reaction,
            )
            .first()
        )

    def get_for_message(self, message_id: UUID) -> list[MessageReaction]:
        return (
            self.db.query(MessageReaction)
            .filter(MessageReaction.message_id == message_id)
            .order_by(MessageReaction.created_at.asc())
            .all()
        )

    def create(self, message_id: UUID, employee_id: UUID, reaction: str) -> MessageReaction:
        row = MessageReaction(message_id=message_id, employee_id=employee_id, reaction=reaction)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, row: MessageReaction) -> None:
        self.db.delete(row)
        self.db.commit()
