"""HTTP client for the API: keeps the bearer token and turns error envelopes into ApiError.

Logout only discards the local token; the server keeps accepting it until it expires.
"""

from __future__ import annotations

import mimetypes
import time
from pathlib import Path
from urllib.parse import quote
from typing import Any, BinaryIO

import httpx
import jwt

DEFAULT_TIMEOUT_SEC = 10.0

# A file to upload: a path, or a (filename, content, mimetype) tuple as httpx accepts.
FileSpec = str | Path | tuple[str, bytes | BinaryIO, str]


class ApiError(Exception):
    """Raised for non-2xx responses (status_code from the response) and transport failures (status_code 0)."""

    def __init__(self, message: str, status_code: int, data: dict[str, Any] | None = None) -> None:
        self.message = message
        self.status_code = status_code
        self.data = data or {}
        super().__init__(message)

    @property
    def errors(self) -> list[dict[str, Any]]:
        """Field-level validation errors, when the server sent any."""
        return self.data.get("errors") or []


class TokenStore:
    """In-memory bearer token holder."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None

    def is_valid(self) -> bool:
        """True if a token is present and its exp claim is in the future (signature is not checked)."""
        if not self._token:
            return False
        try:
            payload = jwt.decode(self._token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return False
        exp = payload.get("exp")
        return isinstance(exp, (int, float)) and exp > time.time()


def _file_part(spec: FileSpec) -> tuple[str, Any, str]:
    if isinstance(spec, tuple):
        return spec
    path = Path(spec)
    mimetype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return (path.name, path.read_bytes(), mimetype)


class ApiClient:
    """
    Thin wrapper over httpx.Client for the auth, user and upload endpoints.

    base_url is the API root including its prefix, e.g. http://localhost:8000/api.
    Every method returns the decoded response envelope.
    """

    def __init__(
        self,
        base_url: str,
        token_store: TokenStore | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self.tokens = token_store or TokenStore()
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        files: list[tuple[str, tuple[str, Any, str]]] | None = None,
    ) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        token = self.tokens.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = self._client.request(
                method,
                endpoint,
                json=json,
                params=params,
                files=files,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise ApiError("Network error", 0, {"error": str(e)}) from e

        try:
            data = resp.json()
        except ValueError:
            data = {"success": resp.is_success, "message": resp.text[:500] or resp.reason_phrase}
        if not isinstance(data, dict):
            data = {"success": resp.is_success, "data": data}
        if resp.is_error:
            raise ApiError(data.get("message") or f"Request failed ({resp.status_code})", resp.status_code, data)
        return data

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Any = None) -> dict[str, Any]:
        return self.request("POST", endpoint, json=data)

    def put(self, endpoint: str, data: Any = None, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return self.request("PUT", endpoint, json=data, params=params)

    def delete(self, endpoint: str) -> dict[str, Any]:
        return self.request("DELETE", endpoint)

    # Auth

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> dict[str, Any]:
        body = {
            "username": username,
            "email": email,
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
        }
        response = self.post("/auth/register", body)
        self._remember_token(response)
        return response

    def login(self, identifier: str, password: str) -> dict[str, Any]:
        response = self.post("/auth/login", {"identifier": identifier, "password": password})
        self._remember_token(response)
        return response

    def logout(self) -> None:
        self.tokens.clear()

    def is_authenticated(self) -> bool:
        return self.tokens.is_valid()

    def get_current_user(self) -> dict[str, Any]:
        return self.get("/auth/me")

    def update_profile(
        self,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
    ) -> dict[str, Any]:
        fields = {"firstName": first_name, "lastName": last_name, "email": email}
        return self.put("/auth/update-profile", {k: v for k, v in fields.items() if v is not None})

    def change_password(self, current_password: str, new_password: str) -> dict[str, Any]:
        return self.put(
            "/auth/change-password",
            {"currentPassword": current_password, "newPassword": new_password},
        )

    def _remember_token(self, response: dict[str, Any]) -> None:
        token = (response.get("data") or {}).get("token")
        if response.get("success") and token:
            self.tokens.set(token)

    # Users

    def get_users(self, **params: Any) -> dict[str, Any]:
        """Query params: page, limit, search, role, isActive."""
        query = {k: _query_value(v) for k, v in params.items() if v is not None}
        return self.get("/users", params=query)

    def get_user(self, user_id: int) -> dict[str, Any]:
        return self.get(f"/users/{user_id}")

    def update_user_status(self, user_id: int, is_active: bool) -> dict[str, Any]:
        return self.put(f"/users/{user_id}/status", params={"isActive": _query_value(is_active)})

    def update_user_role(self, user_id: int, role: str) -> dict[str, Any]:
        return self.put(f"/users/{user_id}/role", params={"role": role})

    def delete_user(self, user_id: int) -> dict[str, Any]:
        return self.delete(f"/users/{user_id}")

    def get_user_stats(self) -> dict[str, Any]:
        return self.get("/users/stats/overview")

    # Files

    def upload_profile_picture(self, file: FileSpec) -> dict[str, Any]:
        return self.request("POST", "/upload/profile-picture", files=[("profilePicture", _file_part(file))])

    def upload_files(self, files: list[FileSpec]) -> dict[str, Any]:
        return self.request("POST", "/upload/files", files=[("files", _file_part(f)) for f in files])

    def delete_profile_picture(self) -> dict[str, Any]:
        return self.delete("/upload/profile-picture")

    def delete_file(self, filename: str) -> dict[str, Any]:
        return self.delete(f"/upload/file/{quote(filename, safe='')}")

    def get_file_info(self, filename: str) -> dict[str, Any]:
        return self.get(f"/upload/info/{quote(filename, safe='')}")


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
