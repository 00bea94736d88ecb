"""Chat file and profile picture upload endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.upload import AvatarUploadOut, FileUploadOut
from app.services.upload_service import (
    UploadValidationError,
    delete_avatar,
    save_avatar,
    save_chat_file,
)

router = APIRouter(tags=["upload"])
logger = logging.getLogger(__name__)


@router.post("/api/upload", response_model=FileUploadOut)
async def upload_chat_file(
    current_user: Annotated[User, Depends(get_current_user)],
    chatFile: Annotated[UploadFile | None, File()] = None,
) -> FileUploadOut:
    """Store a chat attachment and return the reference to send with a message."""
    try:
        stored = await save_chat_file(chatFile)
    except UploadValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except OSError:
        logger.exception("Upload failed for user %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed. Please try again.",
        )

    return FileUploadOut(
        message="File uploaded successfully",
        path=stored.path,
        name=stored.name,
        mime_type=stored.mime_type,
    )


@router.post("/api/profile/upload-pic", response_model=AvatarUploadOut)
async def upload_profile_picture(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    profilePic: Annotated[UploadFile | None, File()] = None,
) -> AvatarUploadOut:
    """Replace the current user's profile picture."""
    try:
        avatar_url = await save_avatar(profilePic, current_user.id)
    except UploadValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except OSError:
        logger.exception("Avatar upload failed for user %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error updating profile picture",
        )

    previous_url = current_user.avatar_url
    current_user.avatar_url = avatar_url
    await db.commit()
    delete_avatar(previous_url)

    return AvatarUploadOut(
        message="Profile picture updated successfully",
        avatar_url=avatar_url,
    )
