"""Auth endpoints: register, login, current user, profile update and password change."""

from typing import Any

from fastapi import APIRouter, status

from app.api.deps import CurrentUser, DbSession
from app.core.security import create_access_token
from app.schemas.auth import (
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from app.schemas.common import ApiResponse, envelope
from app.schemas.user import UserData, UserOut
from app.services import users

router = APIRouter()


@router.post(
    "/register",
    response_model=ApiResponse[AuthData],
    response_model_exclude_unset=True,
    status_code=status.HTTP_201_CREATED,
)
def register(body: RegisterRequest, db: DbSession) -> dict[str, Any]:
    """
    Create an account (role 'user') and log it in immediately.
    Include the returned token in the Authorization header as: Bearer <token>
    """
    user = users.register_user(
        db,
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    token = create_access_token(user.id)
    return envelope(
        AuthData(token=token, user=UserOut.from_user(user)),
        message="User registered successfully",
    )


@router.post("/login", response_model=ApiResponse[AuthData], response_model_exclude_unset=True)
def login(body: LoginRequest, db: DbSession) -> dict[str, Any]:
    """Authenticate with username or email plus password; returns a JWT and the user."""
    user = users.authenticate(db, body.identifier, body.password)
    token = create_access_token(user.id)
    return envelope(
        AuthData(token=token, user=UserOut.from_user(user)),
        message="Login successful",
    )


@router.get("/me", response_model=ApiResponse[UserData], response_model_exclude_unset=True)
def me(current_user: CurrentUser) -> dict[str, Any]:
    return envelope(UserData(user=UserOut.from_user(current_user)))


@router.put("/update-profile", response_model=ApiResponse[UserData], response_model_exclude_unset=True)
def update_profile(
    body: UpdateProfileRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> dict[str, Any]:
    """Update first name, last name and/or email. Role and status cannot be changed here."""
    user = users.update_profile(db, current_user, **body.model_dump(exclude_none=True))
    return envelope(UserData(user=UserOut.from_user(user)), message="Profile updated successfully")


@router.put("/change-password", response_model=ApiResponse, response_model_exclude_unset=True)
def change_password(
    body: ChangePasswordRequest,
    current_user: CurrentUser,
    db: DbSession,
) -> dict[str, Any]:
    """Change the caller's password. Tokens issued earlier remain valid until they expire."""
    users.change_password(db, current_user, body.current_password, body.new_password)
    return envelope(message="Password changed successfully")
