"""Response envelope shared by every endpoint: {success, message?, data?, errors?}."""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope. Routes use response_model_exclude_unset so absent keys are omitted."""

    success: bool = True
    message: str | None = None
    data: T | None = None


def envelope(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Build a success body containing only the keys that were provided."""
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
