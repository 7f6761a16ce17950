"""Role flags and tenant scope derived from an employee record."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Query

from intranet.models.employee import Employee, EmployeeRole

ADMIN_ROLES = frozenset({EmployeeRole.ADMIN.value, EmployeeRole.SUPER_ADMIN.value})
MANAGER_ROLES = ADMIN_ROLES | {EmployeeRole.MANAGER.value}


@dataclass(frozen=True)
class UserPermissions:
    employee: Employee | None
    is_admin: bool = False
    is_manager: bool = False
    is_super_admin: bool = False
    hospital_id: UUID | None = None
    department_id: UUID | None = None


def derive_permissions(employee: Employee | None) -> UserPermissions:
    if employee is None:
        return UserPermissions(employee=None)

    role = str(employee.role)
    return UserPermissions(
        employee=employee,
        is_admin=role in ADMIN_ROLES,
        is_manager=role in MANAGER_ROLES,
        is_super_admin=role == EmployeeRole.SUPER_ADMIN.value,
        hospital_id=employee.hospital_id,  # type: ignore[arg-type]
        department_id=employee.department_id,  # type: ignore[arg-type]
    )


def apply_hospital_filter(
    query: Query,  # type: ignore[type-arg]
    model: Any,
    permissions: UserPermissions,
) -> Query:  # type: ignore[type-arg]
    """Restrict everyone but super admins to rows of their own hospital."""
    if permissions.is_super_admin:
        return query
    return query.filter(model.hospital_id == permissions.hospital_id)
