"""Repository for Department lookups."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from intranet.models.department import Department


class DepartmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, hospital_id: UUID, name: str, description: str | None = None) -> Department:
        department = Department(hospital_id=hospital_id, name=name, description=description)
        self.db.add(department)
        self.db.commit()
        self.db.refresh(department)
        return department

    def get_by_id(self, department_id: UUID, hospital_id: UUID | None = None) -> Department | None:
        query = self.db.query(Department).filter(Department.id == department_id)
        if hospital_id is not None:
            query = query.filter(Department.hospital_id == hospital_id)
        return query.first()
