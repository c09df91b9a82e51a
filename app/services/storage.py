"""Disk storage for uploaded files: type/size checks, unique names, traversal-safe lookups.

Writes to disk and database commits are not transactional. Callers remove a freshly
written file when the follow-up database work fails, but a crash between the two can
still leave an unreferenced file behind.
"""

import logging
import os
import re
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from app.core.errors import NotFound, ValidationError

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

PROFILE_PICTURES_DIR = "profile-pictures"
MAX_FILES_PER_REQUEST = 5
CHUNK_SIZE = 1024 * 1024
# Extensions kept from client file names; anything else is dropped.
_SAFE_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass(frozen=True)
class StoredFile:
    """A file written by FileStorage."""

    filename: str
    original_name: str
    size: int
    mimetype: str
    path: Path
    url: str


def ensure_safe_filename(filename: str) -> str:
    """Reject names that could escape the upload directory. Runs before any filesystem access."""
    if (
        not filename
        or ".." in filename
        or "/" in filename
        or "\\" in filename
        or "\x00" in filename
    ):
        raise ValidationError("Invalid filename")
    return filename


def _original_name(raw: str | None) -> str:
    return os.path.basename((raw or "").replace("\\", "/")) or "unnamed_file"


def _extension(original_name: str) -> str:
    ext = os.path.splitext(original_name)[1]
    return ext.lower() if _SAFE_EXTENSION.match(ext) else ""


class FileStorage:
    """
    Upload storage rooted at upload_dir.

    General uploads live directly in upload_dir and profile pictures in
    upload_dir/profile-pictures. Public URLs mirror that layout under url_prefix.
    """

    def __init__(
        self,
        upload_dir: str | Path,
        allowed_types: frozenset[str] | set[str],
        max_file_size: int,
        url_prefix: str = "/uploads",
    ) -> None:
        self.upload_dir = Path(upload_dir).resolve()
        self.profile_dir = self.upload_dir / PROFILE_PICTURES_DIR
        self.allowed_types = frozenset(t.lower() for t in allowed_types)
        self.max_file_size = max_file_size
        self.url_prefix = url_prefix.rstrip("/")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "FileStorage":
        return cls(
            upload_dir=settings.UPLOAD_DIR,
            allowed_types=settings.allowed_file_types,
            max_file_size=settings.MAX_FILE_SIZE,
            url_prefix=settings.UPLOAD_URL_PREFIX,
        )

    def ensure_directories(self) -> None:
        self.profile_dir.mkdir(parents=True, exist_ok=True)

    def check_type(self, mimetype: str | None) -> str:
        normalized = (mimetype or "").split(";")[0].strip().lower()
        if normalized not in self.allowed_types:
            raise ValidationError(
                f"File type {normalized or 'unknown'} is not allowed. "
                f"Allowed types: {', '.join(sorted(self.allowed_types))}"
            )
        return normalized

    def generate_filename(self, field: str, owner_id: int, original_name: str) -> str:
        """<field>-<owner>-<epoch ms>-<random><ext>; the client name only contributes a vetted extension."""
        millis = int(time.time() * 1000)
        return f"{field}-{owner_id}-{millis}-{secrets.randbelow(10**9)}{_extension(original_name)}"

    def url_for(self, path: Path) -> str:
        relative = path.relative_to(self.upload_dir).as_posix()
        return f"{self.url_prefix}/{relative}"

    async def save(
        self,
        upload: UploadFile,
        *,
        field: str,
        owner_id: int,
        profile_picture: bool = False,
    ) -> StoredFile:
        """
        Validate and write one upload. The MIME type is checked before anything is
        written; the size ceiling is enforced while streaming and a partial file is
        removed when it is exceeded.
        Chunk writes run in the threadpool so disk I/O does not block the event loop.
        """
        mimetype = self.check_type(upload.content_type)
        original_name = _original_name(upload.filename)
        directory = self.profile_dir if profile_picture else self.upload_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.generate_filename(field, owner_id, original_name)

        size = 0
        try:
            with open(path, "wb") as out:
                while chunk := await upload.read(CHUNK_SIZE):
                    size += len(chunk)
                    if size > self.max_file_size:
                        raise ValidationError(
                            f"File too large. Maximum size is {self.max_file_size} bytes"
                        )
                    await run_in_threadpool(out.write, chunk)
        except BaseException:
            self.remove(path)
            raise

        logger.info(
            "Stored upload",
            extra={"stored_name": path.name, "size": size, "mimetype": mimetype, "owner_id": owner_id},
        )
        return StoredFile(
            filename=path.name,
            original_name=original_name,
            size=size,
            mimetype=mimetype,
            path=path,
            url=self.url_for(path),
        )

    async def save_many(
        self,
        uploads: list[UploadFile],
        *,
        field: str,
        owner_id: int,
    ) -> list[StoredFile]:
        """Store 1..MAX_FILES_PER_REQUEST files; on any failure the files already written are removed."""
        if not uploads:
            raise ValidationError("No files uploaded")
        if len(uploads) > MAX_FILES_PER_REQUEST:
            raise ValidationError(f"Too many files. At most {MAX_FILES_PER_REQUEST} files per request")
        for upload in uploads:
            self.check_type(upload.content_type)

        stored: list[StoredFile] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload, field=field, owner_id=owner_id))
        except BaseException:
            for item in stored:
                self.remove(item.path)
            raise
        return stored

    def remove(self, path: Path) -> bool:
        """Delete a file if it is still there. Missing files and OS errors are logged, not raised."""
        try:
            if path.exists():
                path.unlink()
                return True
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove file", extra={"path": str(path), "error": str(e)})
        return False

    def path_for_url(self, url: str) -> Path | None:
        """Map a public URL produced by url_for back to disk; None if it does not point inside upload_dir."""
        prefix = f"{self.url_prefix}/"
        if not url or not url.startswith(prefix):
            return None
        parts = url[len(prefix):].split("/")
        if any(part in ("", ".", "..") or "\\" in part or "\x00" in part for part in parts):
            return None
        return self.upload_dir.joinpath(*parts)

    def remove_url(self, url: str) -> bool:
        path = self.path_for_url(url)
        if path is None:
            logger.warning("Ignoring stored file reference outside upload dir", extra={"url": url})
            return False
        return self.remove(path)

    def resolve(self, filename: str) -> Path:
        """Path of an existing general upload; traversal guard first, then NotFound."""
        ensure_safe_filename(filename)
        path = self.upload_dir / filename
        if not path.is_file():
            raise NotFound("File not found")
        return path

    def delete_file(self, filename: str) -> None:
        path = self.resolve(filename)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise NotFound("File not found") from e
        logger.info("Deleted upload", extra={"stored_name": filename})

    def file_info(self, filename: str) -> dict[str, Any]:
        path = self.resolve(filename)
        st = path.stat()
        created = getattr(st, "st_birthtime", st.st_ctime)
        return {
            "filename": filename,
            "size": st.st_size,
            "extension": path.suffix,
            "created": datetime.fromtimestamp(created, UTC),
            "modified": datetime.fromtimestamp(st.st_mtime, UTC),
            "url": self.url_for(path),
        }
