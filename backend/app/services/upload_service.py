"""Chat file and avatar upload handling, validation, and storage."""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile

from app.config import settings

logger = logging.getLogger(__name__)

CHAT_FILES_DIR = "chat_files"
AVATARS_DIR = "profile_pics"
PUBLIC_PREFIX = "/uploads"

IMAGE_MIME_TO_EXTENSION = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class UploadValidationError(ValueError):
    """Raised when an uploaded file fails validation."""


@dataclass
class StoredFile:
    path: str
    name: str
    mime_type: str


def ensure_storage_dir(subdir: str) -> Path:
    storage_dir = Path(settings.upload_storage_dir) / subdir
    storage_dir.mkdir(parents=True, exist_ok=True)
    return storage_dir


def _normalise_content_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _safe_filename(filename: str) -> str:
    """Keep the basename and replace anything outside a conservative charset."""
    base = Path(filename.replace("\\", "/")).name.strip()
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._")
    return cleaned[:150] or "file"


def public_url(subdir: str, stored_name: str) -> str:
    return f"{PUBLIC_PREFIX}/{subdir}/{stored_name}"


def resolve_public_url(url: str) -> Path | None:
    """Map a public upload URL back to its file, or None if it is not one of ours."""
    prefix = f"{PUBLIC_PREFIX}/"
    if not url or not url.startswith(prefix):
        return None
    relative = url[len(prefix):]
    root = Path(settings.upload_storage_dir).resolve()
    candidate = (root / relative).resolve()
    if root not in candidate.parents:
        return None
    return candidate


async def _read_limited(upload: UploadFile, max_bytes: int, filename: str) -> bytes:
    content = await upload.read()
    await upload.close()
    if len(content) == 0:
        raise UploadValidationError(f"File '{filename}' is empty.")
    if len(content) > max_bytes:
        raise UploadValidationError(f"File '{filename}' is too large.")
    return content


def _delete_file_safely(path: Path) -> None:
    try:
        if path.exists():
            path.unlink()
    except OSError:
        # Best effort cleanup; stale files are acceptable in failure cases.
        logger.warning("Could not delete upload %s", path)


async def save_chat_file(upload: UploadFile | None) -> StoredFile:
    """Store a chat attachment and return the reference a message can carry."""
    if upload is None:
        raise UploadValidationError("No file uploaded.")
    filename = (upload.filename or "").strip() or "upload"
    content = await _read_limited(
        upload, settings.upload_max_file_mb * 1024 * 1024, filename
    )

    storage_dir = ensure_storage_dir(CHAT_FILES_DIR)
    stored_name = f"{uuid.uuid4().hex}-{_safe_filename(filename)}"
    (storage_dir / stored_name).write_bytes(content)

    return StoredFile(
        path=public_url(CHAT_FILES_DIR, stored_name),
        name=filename,
        mime_type=_normalise_content_type(upload.content_type) or "application/octet-stream",
    )


async def save_avatar(upload: UploadFile | None, user_id: uuid.UUID) -> str:
    """Store a profile picture and return its public URL.

    The stored extension always comes from the declared image type, never from
    the client filename, so the static mount serves avatars as images only.
    """
    if upload is None:
        raise UploadValidationError("No profile picture uploaded.")
    content_type = _normalise_content_type(upload.content_type)
    extension = IMAGE_MIME_TO_EXTENSION.get(content_type)
    if extension is None:
        allowed = ", ".join(sorted(IMAGE_MIME_TO_EXTENSION))
        raise UploadValidationError(
            f"Only image files are allowed for profile pictures ({allowed})."
        )

    filename = (upload.filename or "").strip() or "avatar"
    content = await _read_limited(
        upload, settings.upload_max_avatar_mb * 1024 * 1024, filename
    )

    storage_dir = ensure_storage_dir(AVATARS_DIR)
    stored_name = f"{user_id}-{uuid.uuid4().hex[:12]}{extension}"
    (storage_dir / stored_name).write_bytes(content)
    return public_url(AVATARS_DIR, stored_name)


def delete_avatar(url: str | None) -> None:
    """Remove a previously stored avatar; URLs outside the avatar store are left alone."""
    if not url or not url.startswith(public_url(AVATARS_DIR, "")):
        return
    path = resolve_public_url(url)
    if path is not None:
        _delete_file_safely(path)
