"""Endpoints describing the authenticated caller."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from intranet.core.auth import get_current_employee, get_current_principal
from intranet.core.database import get_db
from intranet.core.errors import NoTenantAvailable, NotAuthenticated
from intranet.models.employee import Employee
from intranet.schemas.employee import (
    EmployeeLink,
    EmployeeResponse,
    MeResponse,
    PermissionsResponse,
)
from intranet.services.identity_service import IdentityResolver, Principal
from intranet.services.permission_service import derive_permissions

router = APIRouter()


def _me_response(employee: Employee) -> MeResponse:
    permissions = derive_permissions(employee)
    return MeResponse(
        employee=EmployeeResponse.model_validate(employee),
        permissions=PermissionsResponse(
            is_admin=permissions.is_admin,
            is_manager=permissions.is_manager,
            is_super_admin=permissions.is_super_admin,
            hospital_id=permissions.hospital_id,
            department_id=permissions.department_id,
        ),
    )


@router.get(
    "",
    response_model=MeResponse,
    summary="Get the current employee",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        409: {"description": "No hospital exists to provision the employee into"},
    },
)
async def get_me(employee: Employee = Depends(get_current_employee)) -> MeResponse:
    """Return the caller's employee record and derived permissions."""
    return _me_response(employee)


@router.post(
    "/link",
    response_model=MeResponse,
    summary="Link the current principal to an employee",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        404: {"description": "Hospital not found"},
        409: {"description": "Email already belongs to another employee"},
    },
)
async def link_me(
    data: EmployeeLink,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> MeResponse:
    """Create the caller's employee record with explicit details, or return the linked one."""
    resolver = IdentityResolver(db)
    try:
        employee = resolver.link_employee(
            principal,
            name=data.name,
            hospital_id=data.hospital_id,
            department_id=data.department_id,
            role=data.role,
            position=data.position,
        )
    except NotAuthenticated as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from None
    except NoTenantAvailable as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from None
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Employee already exists") from None
    return _me_response(employee)
