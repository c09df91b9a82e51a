"""ORM models. Import from here so Alembic sees every table on Base.metadata."""

from app.models.base import Base
from app.models.user import User, UserRole

__all__ = ["Base", "User", "UserRole"]
