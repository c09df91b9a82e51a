"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from app.schemas.common import ApiResponse, envelope
from app.schemas.health import HealthData
from app.schemas.upload import (
    FileInfo,
    ProfilePictureData,
    UploadedFileItem,
    UploadedFilesData,
)
from app.schemas.user import (
    Pagination,
    StatsData,
    UserData,
    UserListData,
    UserOut,
    UserStats,
)

__all__ = [
    "ApiResponse",
    "AuthData",
    "ChangePasswordRequest",
    "FileInfo",
    "HealthData",
    "LoginRequest",
    "Pagination",
    "ProfilePictureData",
    "RegisterRequest",
    "StatsData",
    "UpdateProfileRequest",
    "UploadedFileItem",
    "UploadedFilesData",
    "UserData",
    "UserListData",
    "UserOut",
    "UserStats",
    "envelope",
]
