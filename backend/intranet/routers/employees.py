"""Employee directory endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from intranet.core.auth import get_user_permissions
from intranet.core.database import get_db
from intranet.models.employee import Employee, EmployeeStatus
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.schemas.employee import EmployeeResponse
from intranet.services.permission_service import UserPermissions, apply_hospital_filter

router = APIRouter()


@router.get(
    "/",
    response_model=list[EmployeeResponse],
    summary="List employees",
    responses={401: {"description": "Unauthorized – invalid or missing access token"}},
)
async def list_employees(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    hospital_id: UUID | None = None,
    department_id: UUID | None = None,
    status: EmployeeStatus | None = None,
    search: str | None = Query(default=None, max_length=100),
    db: Session = Depends(get_db),
    permissions: UserPermissions = Depends(get_user_permissions),
) -> list[Employee]:
    """List employees of the caller's hospital.

    Super admins see every hospital and may narrow the list with ``hospital_id``.
    """
    repo = EmployeeRepository(db)
    filters = {
        "hospital_id": hospital_id,
        "department_id": department_id,
        "status": status.value if status is not None else None,
        "search": search,
    }
    response.headers["X-Total-Count"] = str(repo.count_directory(permissions, **filters))
    return repo.get_directory(permissions, skip=skip, limit=limit, **filters)


@router.get(
    "/{employee_id}",
    response_model=EmployeeResponse,
    summary="Get an employee",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        404: {"description": "Employee not found"},
    },
)
async def get_employee(
    employee_id: UUID,
    db: Session = Depends(get_db),
    permissions: UserPermissions = Depends(get_user_permissions),
) -> Employee:
    query = db.query(Employee).filter(Employee.id == employee_id)
    employee = apply_hospital_filter(query, Employee, permissions).first()
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee
