"""Maps an authenticated principal to its employee record."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from intranet.core.errors import NoTenantAvailable, NotAuthenticated
from intranet.models.employee import Employee, EmployeeRole, EmployeeStatus
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.repositories.hospital_repository import HospitalRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Identity asserted by the auth provider's token."""

    id: str
    email: str | None
    email_verified_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        name = self.metadata.get("name") or self.metadata.get("full_name")
        if name:
            return str(name)
        if self.email:
            return self.email.split("@", 1)[0]
        return "New User"


def _require_verified(principal: Principal | None) -> Principal:
    if principal is None or not principal.email:
        raise NotAuthenticated("No authenticated principal")
    if principal.email_verified_at is None:
        raise NotAuthenticated("Email address has not been verified")
    return principal


class IdentityResolver:
    def __init__(self, db: Session):
        self.db = db
        self.employee_repo = EmployeeRepository(db)
        self.hospital_repo = HospitalRepository(db)

    def _claim(self, employee: Employee, principal: Principal) -> Employee:
        """Link ``employee`` to ``principal`` unless another auth user owns it."""
        if not employee.auth_user_id:
            return self.employee_repo.link_auth_user(employee, principal.id)
        if employee.auth_user_id != principal.id:
            logger.warning(
                "Rejected login for employee %s: token subject does not match linked auth user",
                employee.id,
            )
            raise NotAuthenticated("Email belongs to a different account")
        return employee

    def resolve_employee(self, principal: Principal | None) -> Employee:
        """Return the employee for ``principal``, creating one on first access.

        Only verified emails resolve, and an employee already linked to a
        different auth user is refused. New employees join the earliest
        created hospital with the default ``employee`` role. Safe to call
        repeatedly: the unique email constraint turns a racing second insert
        into a re-read.
        """
        principal = _require_verified(principal)

        employee = self.employee_repo.get_by_email(principal.email)
        if employee is not None:
            return self._claim(employee, principal)

        hospital = self.hospital_repo.get_first()
        if hospital is None:
            raise NoTenantAvailable("No hospital exists to assign the new employee to")

        logger.info("Provisioning employee for %s in hospital %s", principal.email, hospital.id)
        try:
            return self.employee_repo.create(
                name=principal.display_name,
                email=principal.email,
                hospital_id=hospital.id,  # type: ignore[arg-type]
                role=EmployeeRole.EMPLOYEE.value,
                status=EmployeeStatus.ACTIVE.value,
                auth_user_id=principal.id,
            )
        except IntegrityError:
            self.db.rollback()
            existing = self.employee_repo.get_by_email(principal.email)
            if existing is None:
                raise
            return self._claim(existing, principal)

    def link_employee(
        self,
        principal: Principal | None,
        *,
        name: str,
        hospital_id: UUID,
        department_id: UUID | None = None,
        role: str = EmployeeRole.EMPLOYEE.value,
        position: str | None = None,
    ) -> Employee:
        """Return the employee linked to ``principal`` or create it explicitly."""
        principal = _require_verified(principal)

        existing = self.employee_repo.get_by_auth_user_id(principal.id)
        if existing is not None:
            return existing

        by_email = self.employee_repo.get_by_email(principal.email)
        if by_email is not None:
            return self._claim(by_email, principal)

        if self.hospital_repo.get_by_id(hospital_id) is None:
            raise NoTenantAvailable(f"Hospital {hospital_id} not found")

        return self.employee_repo.create(
            name=name,
            email=principal.email,
            hospital_id=hospital_id,
            department_id=department_id,
            role=role,
            position=position,
            auth_user_id=principal.id,
        )
