"""Schemas for user records, admin listing and statistics."""

from datetime import datetime

from pydantic import Field

from app.models.user import User, UserRole
from app.schemas.common import CamelModel


class UserOut(CamelModel):
    """Public view of a user. The password hash is never part of it."""

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    profile_picture: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            profile_picture=user.profile_picture,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserData(CamelModel):
    user: UserOut


class Pagination(CamelModel):
    current_page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    total_users: int = Field(..., ge=0)
    has_next_page: bool
    has_prev_page: bool
    limit: int = Field(..., ge=1, le=100)


class UserListData(CamelModel):
    users: list[UserOut]
    pagination: Pagination


class UserStats(CamelModel):
    """Aggregate counts for the admin dashboard. recent_users covers the last 30 days."""

    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    regular_users: int
    recent_users: int


class StatsData(CamelModel):
    stats: UserStats
