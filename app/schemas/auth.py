"""Request/response schemas for auth endpoints."""

import re

from pydantic import ConfigDict, Field, field_validator

from app.core.security import (
    EMAIL_MAX_LEN,
    NAME_MAX_LEN,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    USERNAME_PATTERN,
)
from app.schemas.common import CamelModel
from app.schemas.user import UserOut

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    """Trim and lower-case an email address; raise ValueError if it is not one."""
    normalized = (value or "").strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValueError("Please provide a valid email")
    return normalized


def _strip_name(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise ValueError("must not be blank")
    return stripped


class RegisterRequest(CamelModel):
    """New account. Role is always 'user'; admins are promoted afterwards."""

    username: str = Field(
        ...,
        min_length=USERNAME_MIN_LEN,
        max_length=USERNAME_MAX_LEN,
        pattern=USERNAME_PATTERN,
        description="Letters, digits and underscore",
    )
    email: str = Field(..., max_length=EMAIL_MAX_LEN)
    password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)
    first_name: str = Field(..., min_length=1, max_length=NAME_MAX_LEN)
    last_name: str = Field(..., min_length=1, max_length=NAME_MAX_LEN)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_name(v)


class LoginRequest(CamelModel):
    """Credentials for login; identifier is a username or an email."""

    identifier: str = Field(..., min_length=1, max_length=EMAIL_MAX_LEN)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)


class UpdateProfileRequest(CamelModel):
    """Self-service profile fields. Anything else (role, isActive, ...) is rejected."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, min_length=1, max_length=NAME_MAX_LEN)
    last_name: str | None = Field(default=None, min_length=1, max_length=NAME_MAX_LEN)
    email: str | None = Field(default=None, max_length=EMAIL_MAX_LEN)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str | None) -> str | None:
        return None if v is None else normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        return None if v is None else _strip_name(v)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LEN, max_length=PASSWORD_MAX_LEN)


class AuthData(CamelModel):
    """Issued after register and login. Send as: Authorization: Bearer <token>"""

    token: str
    user: UserOut
