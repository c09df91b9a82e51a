"""Auth dependencies (get_current_user, authorize) and the upload storage dependency."""

from collections.abc import Callable
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.errors import AccountInactive, Forbidden, InvalidToken
from app.core.security import user_id_from_token
from app.models.user import User, UserRole
from app.services.storage import FileStorage
from app.services.users import get_user

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """
    Dependency: require a valid Bearer JWT for an existing, active user.

    Returns the ORM user bound to the request's session. Raises 401 otherwise.
    """
    if credentials is None:
        raise InvalidToken("Not authorized, no token")
    try:
        user_id = user_id_from_token(credentials.credentials)
    except jwt.PyJWTError:
        raise InvalidToken("Not authorized, invalid token")
    user = get_user(db, user_id)
    if user is None:
        raise InvalidToken("Not authorized, user not found")
    if not user.is_active:
        raise AccountInactive()
    return user


def authorize(*roles: UserRole) -> Callable[..., User]:
    """Build a dependency that admits only authenticated users holding one of roles (403 otherwise)."""
    allowed = frozenset(roles)

    def role_gate(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in allowed:
            raise Forbidden(
                f"User role '{current_user.role.value}' is not authorized to access this route"
            )
        return current_user

    return role_gate


require_admin = authorize(UserRole.ADMIN)


@lru_cache
def get_file_storage() -> FileStorage:
    """Upload storage configured from settings; override in tests to point at a temp dir."""
    return FileStorage.from_settings(get_settings())


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
DbSession = Annotated[Session, Depends(get_db)]
Storage = Annotated[FileStorage, Depends(get_file_storage)]
