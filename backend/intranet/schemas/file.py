"""Pydantic schemas for stored files."""

from pydantic import BaseModel


class StoredFileResponse(BaseModel):
    file_name: str
    url: str
    size: int
    placeholder: bool
    notified: int = 0
