"""Repository for Employee records."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Query, Session

from intranet.models.employee import Employee, EmployeeRole, EmployeeStatus
from intranet.services.permission_service import UserPermissions, apply_hospital_filter


class EmployeeRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        name: str,
        email: str,
        hospital_id: UUID,
        role: str = EmployeeRole.EMPLOYEE.value,
        status: str = EmployeeStatus.ACTIVE.value,
        department_id: UUID | None = None,
        position: str | None = None,
        auth_user_id: str | None = None,
    ) -> Employee:
        """Insert an employee. Raises ``IntegrityError`` on a duplicate email."""
        employee = Employee(
            name=name,
            email=email.lower(),
            hospital_id=hospital_id,
            role=role,
            status=status,
            department_id=department_id,
            position=position,
            auth_user_id=auth_user_id,
        )
        self.db.add(employee)
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def get_by_id(self, employee_id: UUID) -> Employee | None:
        return self.db.query(Employee).filter(Employee.id == employee_id).first()

    def get_by_email(self, email: str) -> Employee | None:
        return self.db.query(Employee).filter(Employee.email == email.lower()).first()

    def get_by_auth_user_id(self, auth_user_id: str) -> Employee | None:
        return self.db.query(Employee).filter(Employee.auth_user_id == auth_user_id).first()

    def get_many(self, employee_ids: list[UUID], hospital_id: UUID | None = None) -> list[Employee]:
        if not employee_ids:
            return []
        query = self.db.query(Employee).filter(Employee.id.in_(employee_ids))
        if hospital_id is not None:
            query = query.filter(Employee.hospital_id == hospital_id)
        return query.all()

    def _directory_query(
        self,
        permissions: UserPermissions,
        hospital_id: UUID | None = None,
        department_id: UUID | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = apply_hospital_filter(self.db.query(Employee), Employee, permissions)
        if hospital_id is not None:
            query = query.filter(Employee.hospital_id == hospital_id)
        if department_id is not None:
            query = query.filter(Employee.department_id == department_id)
        if status is not None:
            query = query.filter(Employee.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                Employee.name.ilike(pattern) | Employee.email.like(pattern)
            )
        return query

    def get_directory(
        self,
        permissions: UserPermissions,
        *,
        hospital_id: UUID | None = None,
        department_id: UUID | None = None,
        status: str | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Employee]:
        """Employees visible to ``permissions``, ordered by name."""
        return (
            self._directory_query(permissions, hospital_id, department_id, status, search)
            .order_by(Employee.name.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_directory(
        self,
        permissions: UserPermissions,
        *,
        hospital_id: UUID | None = None,
        department_id: UUID | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> int:
        return self._directory_query(
            permissions, hospital_id, department_id, status, search
        ).count()

    def get_active_by_hospital(self, hospital_id: UUID) -> list[Employee]:
        return (
            self.db.query(Employee)
            .filter(
                Employee.hospital_id == hospital_id,
                Employee.status == EmployeeStatus.ACTIVE.value,
            )
            .order_by(Employee.name.asc())
            .all()
        )

    def get_active_by_department(self, hospital_id: UUID, department_id: UUID) -> list[Employee]:
        return (
            self.db.query(Employee)
            .filter(
                Employee.hospital_id == hospital_id,
                Employee.department_id == department_id,
                Employee.status == EmployeeStatus.ACTIVE.value,
            )
            .order_by(Employee.name.asc())
            .all()
        )

    def link_auth_user(self, employee: Employee, auth_user_id: str) -> Employee:
        employee.auth_user_id = auth_user_id  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(employee)
        return employee
