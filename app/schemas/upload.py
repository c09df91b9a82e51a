"""Response schemas for the upload endpoints."""

from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel


class ProfilePictureData(CamelModel):
    url: str = Field(..., description="Public path of the stored picture.")
    filename: str
    size: int = Field(..., ge=0)
    mimetype: str


class UploadedFileItem(CamelModel):
    """
    Metadata for one stored file. uploaded_by is reported only; no ownership
    record is persisted for these files.
    """

    filename: str
    original_name: str
    size: int = Field(..., ge=0)
    mimetype: str
    url: str
    uploaded_by: int
    uploaded_at: datetime


class UploadedFilesData(CamelModel):
    files: list[UploadedFileItem]


class FileInfo(CamelModel):
    filename: str
    size: int = Field(..., ge=0)
    extension: str
    created: datetime
    modified: datetime
    url: str
