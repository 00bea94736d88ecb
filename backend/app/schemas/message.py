from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

ROOM_NAME_MAX_LENGTH = 64
MESSAGE_TEXT_MAX_LENGTH = 4000


class FileRef(BaseModel):
    """Reference to a stored chat file, as returned by the upload endpoint."""

    path: str = Field(min_length=1, max_length=500)
    name: str = Field(min_length=1, max_length=255)
    mime_type: str = Field(default="application/octet-stream", max_length=100)


class MessageIn(BaseModel):
    room: str = Field(min_length=1, max_length=ROOM_NAME_MAX_LENGTH)
    text: str | None = Field(default=None, max_length=MESSAGE_TEXT_MAX_LENGTH)
    file: FileRef | None = None
    reply_to: UUID | None = None

    @field_validator("room", mode="before")
    @classmethod
    def _strip_room(cls, value):
        return value.strip() if isinstance(value, str) else value


class SendMessageFrame(MessageIn):
    type: Literal["sendMessage"]


class JoinRoomFrame(BaseModel):
    type: Literal["joinRoom"]
    room: str = Field(min_length=1, max_length=ROOM_NAME_MAX_LENGTH)

    @field_validator("room", mode="before")
    @classmethod
    def _strip_room(cls, value):
        return value.strip() if isinstance(value, str) else value


class SenderOut(BaseModel):
    id: UUID
    username: str
    avatar_url: str | None = None


class ReplyPreview(BaseModel):
    id: UUID
    text: str | None = None
    file: FileRef | None = None
    sender_username: str | None = None


class MessageOut(BaseModel):
    id: UUID
    room: str
    text: str | None = None
    file: FileRef | None = None
    sender: SenderOut
    reply_to: ReplyPreview | None = None
    created_at: datetime


class DeleteMessagesIn(BaseModel):
    ids: list[UUID] = Field(min_length=1, max_length=500)


class DeleteMessagesOut(BaseModel):
    deleted: int
    message: str
