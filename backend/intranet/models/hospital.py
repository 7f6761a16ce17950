from enum import Enum

from sqlalchemy import Column, DateTime, String

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class HospitalType(str, Enum):
    HOSPITAL = "hospital"
    MSO = "mso"


class Hospital(Base):
    """A hospital or MSO organization; the unit of tenant isolation."""

    __tablename__ = "hospitals"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default=HospitalType.HOSPITAL.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
