"""Pydantic schemas for Employee and the caller's permission summary."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: str
    status: str
    hospital_id: UUID
    department_id: UUID | None = None
    position: str | None = None
    created_at: datetime


class PermissionsResponse(BaseModel):
    is_admin: bool
    is_manager: bool
    is_super_admin: bool
    hospital_id: UUID | None = None
    department_id: UUID | None = None


class MeResponse(BaseModel):
    employee: EmployeeResponse
    permissions: PermissionsResponse


class EmployeeLink(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    hospital_id: UUID
    department_id: UUID | None = None
    role: str = Field(default="employee", pattern="^(super_admin|admin|manager|employee)$")
    position: str | None = Field(default=None, max_length=255)
