"""User administration endpoints: listing, lookup, status/role changes, delete and stats."""

from typing import Annotated, Any

from fastapi import APIRouter, Path, Query

from app.api.deps import AdminUser, CurrentUser, DbSession
from app.models.user import UserRole
from app.schemas.common import ApiResponse, envelope
from app.schemas.user import (
    Pagination,
    StatsData,
    UserData,
    UserListData,
    UserOut,
    UserStats,
)
from app.services import users
from app.services.users import DEFAULT_PAGE_LIMIT, MAX_ID, MAX_PAGE_LIMIT, MAX_SEARCH_LENGTH

router = APIRouter()

UserId = Annotated[int, Path(ge=1, le=MAX_ID)]


@router.get("", response_model=ApiResponse[UserListData], response_model_exclude_unset=True)
def list_users(
    _admin: AdminUser,
    db: DbSession,
    page: Annotated[int, Query(ge=1, le=MAX_ID)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_LIMIT)] = DEFAULT_PAGE_LIMIT,
    search: Annotated[str | None, Query(max_length=MAX_SEARCH_LENGTH)] = None,
    role: UserRole | None = None,
    is_active: Annotated[bool | None, Query(alias="isActive")] = None,
) -> dict[str, Any]:
    """List users newest first (admin only), filtered by search text, role and status."""
    result = users.list_users(
        db, page=page, limit=limit, search=search, role=role, is_active=is_active
    )
    return envelope(
        UserListData(
            users=[UserOut.from_user(u) for u in result.users],
            pagination=Pagination(
                current_page=result.page,
                total_pages=result.total_pages,
                total_users=result.total,
                has_next_page=result.has_next_page,
                has_prev_page=result.has_prev_page,
                limit=result.limit,
            ),
        )
    )


@router.get("/stats/overview", response_model=ApiResponse[StatsData], response_model_exclude_unset=True)
def stats_overview(_admin: AdminUser, db: DbSession) -> dict[str, Any]:
    return envelope(StatsData(stats=UserStats(**users.get_stats(db))))


@router.get("/{user_id}", response_model=ApiResponse[UserData], response_model_exclude_unset=True)
def get_user(user_id: UserId, current_user: CurrentUser, db: DbSession) -> dict[str, Any]:
    """Return a user; non-admins may only fetch themselves."""
    user = users.get_user_for(db, current_user, user_id)
    return envelope(UserData(user=UserOut.from_user(user)))


@router.put("/{user_id}/status", response_model=ApiResponse[UserData], response_model_exclude_unset=True)
def update_status(
    user_id: UserId,
    is_active: Annotated[bool, Query(alias="isActive")],
    admin: AdminUser,
    db: DbSession,
) -> dict[str, Any]:
    """Activate or deactivate a user (admin only). Admins cannot deactivate themselves."""
    user = users.set_user_status(db, admin, user_id, is_active)
    action = "activated" if is_active else "deactivated"
    return envelope(UserData(user=UserOut.from_user(user)), message=f"User {action} successfully")


@router.put("/{user_id}/role", response_model=ApiResponse[UserData], response_model_exclude_unset=True)
def update_role(
    user_id: UserId,
    role: UserRole,
    admin: AdminUser,
    db: DbSession,
) -> dict[str, Any]:
    """Change a user's role (admin only). Admins cannot change their own role."""
    user = users.set_user_role(db, admin, user_id, role)
    return envelope(
        UserData(user=UserOut.from_user(user)),
        message=f"User role updated to {user.role.value} successfully",
    )


@router.delete("/{user_id}", response_model=ApiResponse, response_model_exclude_unset=True)
def delete_user(user_id: UserId, admin: AdminUser, db: DbSession) -> dict[str, Any]:
    """Permanently delete a user (admin only). Admins cannot delete themselves."""
    users.delete_user(db, admin, user_id)
    return envelope(message="User deleted successfully")
