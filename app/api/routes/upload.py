"""Upload endpoints: profile picture set/clear, multi-file upload, file delete and file info."""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, File, UploadFile

from app.api.deps import CurrentUser, DbSession, Storage
from app.core.errors import InvalidOperation, ValidationError
from app.schemas.common import ApiResponse, envelope
from app.schemas.upload import (
    FileInfo,
    ProfilePictureData,
    UploadedFileItem,
    UploadedFilesData,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/profile-picture",
    response_model=ApiResponse[ProfilePictureData],
    response_model_exclude_unset=True,
)
async def upload_profile_picture(
    current_user: CurrentUser,
    db: DbSession,
    storage: Storage,
    profile_picture: Annotated[UploadFile | None, File(alias="profilePicture")] = None,
) -> dict[str, Any]:
    """
    Replace the caller's profile picture (multipart field `profilePicture`).

    The previous picture file is deleted, then the user record is updated. If
    anything fails after the new file is written, that file is removed again.
    """
    if profile_picture is None:
        raise ValidationError("No file uploaded")
    stored = await storage.save(
        profile_picture,
        field="profilePicture",
        owner_id=current_user.id,
        profile_picture=True,
    )
    try:
        if current_user.profile_picture:
            storage.remove_url(current_user.profile_picture)
        current_user.profile_picture = stored.url
        db.commit()
    except Exception:
        db.rollback()
        storage.remove(stored.path)
        raise
    return envelope(
        ProfilePictureData(
            url=stored.url,
            filename=stored.filename,
            size=stored.size,
            mimetype=stored.mimetype,
        ),
        message="Profile picture uploaded successfully",
    )


@router.post("/files", response_model=ApiResponse[UploadedFilesData], response_model_exclude_unset=True)
async def upload_files(
    current_user: CurrentUser,
    storage: Storage,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> dict[str, Any]:
    """
    Store up to 5 files (multipart field `files`) and return their metadata.

    Ownership is not recorded anywhere; uploadedBy is informational only.
    """
    stored = await storage.save_many(files or [], field="files", owner_id=current_user.id)
    uploaded_at = datetime.now(UTC)
    items = [
        UploadedFileItem(
            filename=s.filename,
            original_name=s.original_name,
            size=s.size,
            mimetype=s.mimetype,
            url=s.url,
            uploaded_by=current_user.id,
            uploaded_at=uploaded_at,
        )
        for s in stored
    ]
    return envelope(
        UploadedFilesData(files=items),
        message=f"{len(items)} file(s) uploaded successfully",
    )


@router.delete("/profile-picture", response_model=ApiResponse, response_model_exclude_unset=True)
def delete_profile_picture(
    current_user: CurrentUser,
    db: DbSession,
    storage: Storage,
) -> dict[str, Any]:
    if not current_user.profile_picture:
        raise InvalidOperation("No profile picture to delete")
    storage.remove_url(current_user.profile_picture)
    current_user.profile_picture = None
    db.commit()
    return envelope(message="Profile picture deleted successfully")


@router.delete("/file/{filename:path}", response_model=ApiResponse, response_model_exclude_unset=True)
def delete_file(filename: str, current_user: CurrentUser, storage: Storage) -> dict[str, Any]:
    """
    Delete a general upload by name. Any authenticated user may delete any file
    since ownership is not tracked.
    """
    storage.delete_file(filename)
    logger.info("File deleted by user", extra={"user_id": current_user.id, "stored_name": filename})
    return envelope(message="File deleted successfully")


@router.get("/info/{filename:path}", response_model=ApiResponse[FileInfo], response_model_exclude_unset=True)
def file_info(filename: str, _user: CurrentUser, storage: Storage) -> dict[str, Any]:
    return envelope(FileInfo(**storage.file_info(filename)))
