"""Settings, database sessions, password/JWT helpers and the API error types."""

from app.core.config import get_settings, settings
from app.core.database import get_db, session_scope
from app.core.errors import AppError, register_exception_handlers

__all__ = [
    "AppError",
    "get_db",
    "get_settings",
    "register_exception_handlers",
    "session_scope",
    "settings",
]
