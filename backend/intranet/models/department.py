from sqlalchemy import Column, DateTime, ForeignKey, String

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class Department(Base):
    __tablename__ = "departments"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    hospital_id = Column(
        UUIDType,
        ForeignKey("hospitals.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
