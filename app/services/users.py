"""User accounts: registration, credential checks, profile changes and admin operations.

Every function takes the request's Session and raises app.core.errors types; routes
only translate results into the response envelope. Concurrent updates to the same
row are last-write-wins (no version column).
"""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    AccountInactive,
    DuplicateIdentity,
    Forbidden,
    InvalidCredentials,
    InvalidOperation,
    NotFound,
    ValidationError,
)
from app.core.security import hash_password, verify_password
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
MAX_SEARCH_LENGTH = 100
RECENT_USERS_DAYS = 30
# Largest value the INTEGER primary key (and page numbers passed to OFFSET) may take.
MAX_ID = 2**31 - 1

# One message for unknown identifier and wrong password so callers cannot probe for accounts.
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


@dataclass(frozen=True)
class UserPage:
    """One page of users plus the numbers needed for the pagination block."""

    users: list[User]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1


def get_user(session: Session, user_id: int) -> User | None:
    if not 1 <= user_id <= MAX_ID:
        return None
    return session.query(User).filter(User.id == user_id).first()


def _require_user(session: Session, user_id: int) -> User:
    user = get_user(session, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def _ensure_unique(
    session: Session,
    username: str | None = None,
    email: str | None = None,
    exclude_id: int | None = None,
) -> None:
    """Raise DuplicateIdentity if another account already uses username or email."""
    if username is not None:
        q = session.query(User.id).filter(User.username == username)
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first() is not None:
            raise DuplicateIdentity("Username already taken")
    if email is not None:
        q = session.query(User.id).filter(func.lower(User.email) == email.lower())
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first() is not None:
            raise DuplicateIdentity("Email already registered")


def _commit_identity_change(session: Session) -> None:
    """Commit; a unique-constraint race that slipped past _ensure_unique becomes DuplicateIdentity."""
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateIdentity("Username or email already in use") from e


def register_user(
    session: Session,
    *,
    username: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: UserRole = UserRole.USER,
) -> User:
    """Create an account with a hashed password. Email is stored lower-cased."""
    username = username.strip()
    email = email.strip().lower()
    _ensure_unique(session, username=username, email=email)
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role,
        is_active=True,
    )
    session.add(user)
    _commit_identity_change(session)
    session.refresh(user)
    logger.info("User registered", extra={"user_id": user.id, "role": user.role.value})
    return user


def find_by_identifier(session: Session, identifier: str) -> User | None:
    """Look up a user by username or (case-insensitive) email."""
    identifier = identifier.strip()
    return (
        session.query(User)
        .filter(
            or_(
                User.username == identifier,
                func.lower(User.email) == identifier.lower(),
            )
        )
        .first()
    )


def authenticate(session: Session, identifier: str, password: str) -> User:
    """
    Return the user for identifier/password.

    Unknown identifier and wrong password raise the same InvalidCredentials; only a
    correct password on a deactivated account reveals AccountInactive.
    """
    user = find_by_identifier(session, identifier)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Login failed", extra={"reason": "invalid_credentials"})
        raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE)
    if not user.is_active:
        logger.info("Login failed", extra={"reason": "inactive", "user_id": user.id})
        raise AccountInactive()
    logger.info("Login succeeded", extra={"user_id": user.id})
    return user


def update_profile(
    session: Session,
    user: User,
    *,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
) -> User:
    """Update the self-service profile fields; email is re-checked for uniqueness."""
    if email is not None:
        email = email.strip().lower()
        if email != user.email:
            _ensure_unique(session, email=email, exclude_id=user.id)
            user.email = email
    if first_name is not None:
        user.first_name = first_name.strip()
    if last_name is not None:
        user.last_name = last_name.strip()
    _commit_identity_change(session)
    session.refresh(user)
    return user


def change_password(
    session: Session,
    user: User,
    current_password: str,
    new_password: str,
) -> None:
    """Replace the password hash. Tokens issued before the change stay valid until they expire."""
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentials("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    session.commit()
    logger.info("Password changed", extra={"user_id": user.id})


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def list_users(
    session: Session,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    search: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
) -> UserPage:
    """
    Newest-first page of users.

    search is a case-insensitive substring match over first name, last name,
    username and email (any of them).
    """
    errors = []
    if not 1 <= page <= MAX_ID:
        errors.append({"field": "page", "message": "Page must be a positive integer", "location": "query"})
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        errors.append({"field": "limit", "message": "Limit must be between 1 and 100", "location": "query"})
    if search is not None and len(search.strip()) > MAX_SEARCH_LENGTH:
        errors.append({"field": "search", "message": "Search query too long", "location": "query"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    q = session.query(User)
    term = (search or "").strip()
    if term:
        pattern = _like_pattern(term)
        q = q.filter(
            or_(
                User.first_name.ilike(pattern, escape="\\"),
                User.last_name.ilike(pattern, escape="\\"),
                User.username.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
            )
        )
    if role is not None:
        q = q.filter(User.role == role)
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))

    total = q.count()
    users = (
        q.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return UserPage(users=users, total=total, page=page, limit=limit)


def get_user_for(session: Session, actor: User, user_id: int) -> User:
    """Fetch a user the actor may view: themselves, or anyone if the actor is an admin."""
    user = _require_user(session, user_id)
    if actor.id != user.id and actor.role != UserRole.ADMIN:
        raise Forbidden("Access denied")
    return user


def set_user_status(session: Session, actor: User, user_id: int, is_active: bool) -> User:
    if actor.id == user_id and not is_active:
        raise InvalidOperation("Cannot deactivate your own account")
    user = _require_user(session, user_id)
    user.is_active = is_active
    session.commit()
    session.refresh(user)
    logger.info(
        "User status changed",
        extra={"actor_id": actor.id, "user_id": user.id, "is_active": is_active},
    )
    return user


def set_user_role(session: Session, actor: User, user_id: int, role: UserRole | str) -> User:
    try:
        role = UserRole(role)
    except ValueError as e:
        raise ValidationError(
            "Validation failed",
            errors=[{"field": "role", "message": "Invalid role", "location": "query"}],
        ) from e
    if actor.id == user_id:
        raise InvalidOperation("Cannot change your own role")
    user = _require_user(session, user_id)
    user.role = role
    session.commit()
    session.refresh(user)
    logger.info(
        "User role changed",
        extra={"actor_id": actor.id, "user_id": user.id, "role": role.value},
    )
    return user


def delete_user(session: Session, actor: User, user_id: int) -> None:
    """Hard delete. Any profile picture file is left on disk."""
    if actor.id == user_id:
        raise InvalidOperation("Cannot delete your own account")
    user = _require_user(session, user_id)
    session.delete(user)
    session.commit()
    logger.info("User deleted", extra={"actor_id": actor.id, "user_id": user_id})


def get_stats(session: Session, now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=RECENT_USERS_DAYS)

    total = session.query(func.count(User.id)).scalar() or 0
    active = session.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0
    admins = session.query(func.count(User.id)).filter(User.role == UserRole.ADMIN).scalar() or 0
    recent = session.query(func.count(User.id)).filter(User.created_at >= cutoff).scalar() or 0
    return {
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "admin_users": admins,
        "regular_users": total - admins,
        "recent_users": recent,
    }
