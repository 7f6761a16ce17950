from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String

from intranet.core.database import Base
from intranet.models.shared import UUIDType, generate_uuid, utc_now


class EmployeeRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RESIGNED = "resigned"


class Employee(Base):
    """Domain identity of an authenticated principal within a hospital.

    Rows are never deleted; leaving staff move to ``inactive``/``resigned``.
    """

    __tablename__ = "employees"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default=EmployeeRole.EMPLOYEE.value)
    status = Column(String(20), nullable=False, default=EmployeeStatus.ACTIVE.value, index=True)
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
        index=True,
    )
    position = Column(String(255), nullable=True)
    auth_user_id = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
