"""Application error taxonomy and the handlers that render errors into the response envelope."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class AppError(Exception):
    """Base for errors surfaced to API callers as {success: false, message, errors?}."""

    status_code = 500

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message
        self.errors = errors
        self.headers = headers
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or out-of-range input."""

    status_code = 400


class DuplicateIdentity(AppError):
    """Username or email already belongs to another account."""

    status_code = 400


class InvalidOperation(AppError):
    """Request is well-formed but not allowed (e.g. an admin acting on their own account)."""

    status_code = 400


class InvalidCredentials(AppError):
    status_code = 401


class InvalidToken(AppError):
    status_code = 401

    def __init__(self, message: str = "Not authorized, invalid token") -> None:
        super().__init__(message, headers=BEARER_CHALLENGE)


class AccountInactive(AppError):
    status_code = 401

    def __init__(self, message: str = "Account is deactivated") -> None:
        super().__init__(message, headers=BEARER_CHALLENGE)


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


def error_body(message: str, errors: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into {field, message, location} entries."""
    out = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        location = loc[0] if loc else ""
        field = ".".join(loc[1:]) if len(loc) > 1 else location
        out.append({"field": field, "message": err.get("msg", "Invalid value"), "location": location})
    return out


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.errors),
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", _validation_errors(exc)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={"method": request.method, "path": request.url.path},
    )
    return JSONResponse(status_code=500, content=error_body("Server Error"))


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so every error response uses the {success, message, errors} envelope."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
