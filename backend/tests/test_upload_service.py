"""Upload service validation and storage tests.

Run with:
    python -m pytest tests/test_upload_service.py
"""

import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from app.services.upload_service import (
    UploadValidationError,
    delete_avatar,
    resolve_public_url,
    save_avatar,
    save_chat_file,
)


def make_upload(filename: str, content_type: str | None, content: bytes = b"test") -> UploadFile:
    headers = Headers({"content-type": content_type}) if content_type else None
    return UploadFile(
        io.BytesIO(content),
        filename=filename,
        headers=headers,
    )


@pytest.fixture
def storage_dir(tmp_path, monkeypatch) -> Path:
    monkeypatch.setattr("app.services.upload_service.settings.upload_storage_dir", str(tmp_path))
    return tmp_path


@pytest.mark.asyncio
async def test_chat_file_is_stored_with_public_reference(storage_dir) -> None:
    stored = await save_chat_file(make_upload("notes 1.txt", "text/plain; charset=utf-8", b"hello"))

    assert stored.name == "notes 1.txt"
    assert stored.mime_type == "text/plain"
    assert stored.path.startswith("/uploads/chat_files/")
    assert stored.path.endswith("-notes_1.txt")
    assert resolve_public_url(stored.path).read_bytes() == b"hello"


@pytest.mark.asyncio
async def test_chat_file_name_cannot_escape_storage(storage_dir) -> None:
    stored = await save_chat_file(make_upload("../../etc/passwd", "text/plain"))
    assert "/" not in stored.path.removeprefix("/uploads/chat_files/")
    assert resolve_public_url(stored.path).parent == storage_dir / "chat_files"


@pytest.mark.asyncio
async def test_empty_and_missing_files_are_rejected(storage_dir) -> None:
    with pytest.raises(UploadValidationError):
        await save_chat_file(make_upload("empty.txt", "text/plain", b""))
    with pytest.raises(UploadValidationError):
        await save_chat_file(None)


@pytest.mark.asyncio
async def test_oversized_chat_file_is_rejected(storage_dir, monkeypatch) -> None:
    monkeypatch.setattr("app.services.upload_service.settings.upload_max_file_mb", 1)
    with pytest.raises(UploadValidationError):
        await save_chat_file(make_upload("big.bin", None, b"x" * (1024 * 1024 + 1)))


@pytest.mark.asyncio
async def test_avatar_must_be_an_image(storage_dir) -> None:
    with pytest.raises(UploadValidationError):
        await save_avatar(make_upload("cv.pdf", "application/pdf"), "user-1")


@pytest.mark.asyncio
async def test_avatar_uses_mime_extension_and_can_be_deleted(storage_dir) -> None:
    url = await save_avatar(make_upload("clipboard-image", "image/png"), "user-1")

    assert url.startswith("/uploads/profile_pics/user-1-")
    assert url.endswith(".png")
    path = resolve_public_url(url)
    assert path.exists()

    delete_avatar(url)
    assert not path.exists()


def test_delete_avatar_ignores_foreign_urls(storage_dir) -> None:
    outside = storage_dir / "chat_files" / "keep.txt"
    outside.parent.mkdir(parents=True)
    outside.write_text("keep")

    delete_avatar("/uploads/chat_files/keep.txt")
    delete_avatar("https://example.com/avatar.png")
    delete_avatar(None)

    assert outside.exists()


def test_resolve_public_url_rejects_traversal(storage_dir) -> None:
    assert resolve_public_url("/uploads/../secret.txt") is None
    assert resolve_public_url("/static/x.png") is None


@pytest.mark.asyncio
async def test_avatar_extension_ignores_client_filename(storage_dir) -> None:
    url = await save_avatar(make_upload("x.html", "image/png", b"\x89PNG"), "user-1")

    assert url.endswith(".png")
    assert ".html" not in url
    assert resolve_public_url(url).suffix == ".png"


@pytest.mark.asyncio
async def test_avatar_rejects_unlisted_image_types(storage_dir) -> None:
    with pytest.raises(UploadValidationError):
        await save_avatar(make_upload("vector.svg", "image/svg+xml", b"<svg/>"), "user-1")
    assert not (storage_dir / "profile_pics").exists() or not any(
        (storage_dir / "profile_pics").iterdir()
    )
