"""Room message endpoints: history, HTTP send fallback, and bulk delete."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.message import (
    ROOM_NAME_MAX_LENGTH,
    DeleteMessagesIn,
    DeleteMessagesOut,
    MessageIn,
    MessageOut,
)
from app.services import message_service
from app.services.chat_errors import MessageAuthorizationError, MessageValidationError

router = APIRouter(prefix="/api/messages", tags=["messages"])
logger = logging.getLogger(__name__)


@router.get("/{room}", response_model=list[MessageOut])
async def get_room_messages(
    room: Annotated[str, Path(min_length=1, max_length=ROOM_NAME_MAX_LENGTH)],
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Return all messages for a room in chronological order."""
    return await message_service.get_room_messages(db, room.strip())


@router.post("", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageIn,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Persist a message without live fan-out (used when the socket is down)."""
    try:
        message = await message_service.create_message(
            db,
            current_user.id,
            payload.room,
            payload.text,
            file=payload.file,
            reply_to_id=payload.reply_to,
        )
        await db.commit()
    except MessageValidationError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Failed to send message for user %s", current_user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server error sending message",
        )

    outbound = await message_service.get_message_payload(db, message.id)
    if outbound is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Message not found"
        )
    return outbound


@router.delete("", response_model=DeleteMessagesOut)
async def delete_messages(
    payload: DeleteMessagesIn,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete the current user's messages; any foreign id rejects the whole batch."""
    try:
        deleted = await message_service.delete_messages(db, current_user.id, payload.ids)
    except MessageAuthorizationError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message)

    if deleted == 0:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No messages found or authorized for deletion with provided IDs.",
        )

    await db.commit()
    return DeleteMessagesOut(
        deleted=deleted,
        message=f"{deleted} message(s) deleted successfully.",
    )
