from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class MessageReaction(Base):
    __tablename__ = "message_reaction"
    __table_args__ = (
        UniqueConstraint(
            "message_id", "employee_id", "reaction", name="uq_message_reaction_unique"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    message_id = Column(
        UUIDType,
        ForeignKey("message.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id = Column(
        UUIDType,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
    )
    reaction = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
