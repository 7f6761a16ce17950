"""Local bucket storage for chat attachments and shared files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from intranet.core.config import settings
from intranet.core.errors import ValidationFailed

logger = logging.getLogger(__name__)

PLACEHOLDER_SCHEME = "file-placeholder://"


def placeholder_url(file_name: str) -> str:
    return f"{PLACEHOLDER_SCHEME}{file_name}"


@dataclass(frozen=True)
class StoredFile:
    file_name: str
    url: str
    size: int
    placeholder: bool = False


class FileStorageService:
    """Writes files into ``<root>/<bucket>`` and returns their public URL.

    The bucket directory is never created here. When it is missing or the
    write fails, the upload yields a ``file-placeholder://`` URL instead of
    an error so the caller can still reference the file by name.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        bucket: str | None = None,
        public_url: str | None = None,
    ):
        self.root = Path(root if root is not None else settings.STORAGE_ROOT)
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL).rstrip("/")

    @property
    def bucket_path(self) -> Path:
        return self.root / self.bucket

    @staticmethod
    def validate_name(file_name: str) -> str:
        name = (file_name or "").strip()
        if not name or name in {".", ".."} or "/" in name or "\\" in name or "\x00" in name:
            raise ValidationFailed(f"Invalid file name: {file_name!r}")
        return name

    def upload(self, file_name: str, content: bytes) -> StoredFile:
        name = self.validate_name(file_name)
        if not self.bucket_path.is_dir():
            logger.warning("Storage bucket %s missing; %s stored as placeholder", self.bucket, name)
            return StoredFile(name, placeholder_url(name), len(content), placeholder=True)
        try:
            (self.bucket_path / name).write_bytes(content)
        except OSError as exc:
            logger.warning("Upload of %s rejected by storage: %s", name, exc)
            return StoredFile(name, placeholder_url(name), len(content), placeholder=True)
        return StoredFile(name, self.get_public_url(name), len(content))

    def get_public_url(self, file_name: str) -> str:
        return f"{self.public_url}/{quote(self.bucket)}/{quote(file_name)}"
