"""File upload endpoint."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from intranet.core.auth import get_current_employee
from intranet.core.database import get_db
from intranet.core.errors import ValidationFailed
from intranet.models.employee import Employee
from intranet.schemas.file import StoredFileResponse
from intranet.services.file_storage_service import FileStorageService
from intranet.services.notification_service import NotificationService

router = APIRouter()


@router.put(
    "/{file_name}",
    response_model=StoredFileResponse,
    status_code=201,
    summary="Upload a file",
    responses={
        400: {"description": "Invalid file name"},
        401: {"description": "Unauthorized – invalid or missing access token"},
    },
)
async def upload_file(
    file_name: str,
    request: Request,
    share_with: list[UUID] = Query(default=[]),
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> StoredFileResponse:
    """Store the raw request body under ``file_name``.

    Returns a ``file-placeholder://`` URL when storage rejects the upload.
    Employees listed in ``share_with`` are notified once the file is stored.
    """
    content = await request.body()
    try:
        stored = FileStorageService().upload(file_name, content)
    except ValidationFailed as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    notified = 0
    if share_with and not stored.placeholder:
        notified = NotificationService(db).notify_file_shared(
            recipient_ids=share_with,
            file_name=stored.file_name,
            shared_by=employee,
        )
    return StoredFileResponse(
        file_name=stored.file_name,
        url=stored.url,
        size=stored.size,
        placeholder=stored.placeholder,
        notified=notified,
    )
