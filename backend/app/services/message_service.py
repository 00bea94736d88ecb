"""Room message persistence, retrieval, and author-scoped deletion."""

import uuid
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.message import Message
from app.models.user import User
from app.schemas.message import FileRef, MessageOut, ReplyPreview, SenderOut
from app.services.chat_errors import MessageAuthorizationError, MessageValidationError


def normalise_text(text: str | None) -> str | None:
    """Strip message text; blank text counts as absent, never as empty content."""
    if text is None:
        return None
    stripped = text.strip()
    return stripped or None


def validate_content(text: str | None, file: FileRef | None) -> str | None:
    """Return the normalised text, raising if neither text nor file is present."""
    clean_text = normalise_text(text)
    if clean_text is None and file is None:
        raise MessageValidationError(
            "A message needs text or a file.", code="empty_message"
        )
    return clean_text


def _file_ref(message: Message) -> FileRef | None:
    if not message.file_path:
        return None
    return FileRef(
        path=message.file_path,
        name=message.file_name or "file",
        mime_type=message.file_mime_type or "application/octet-stream",
    )


async def create_message(
    db: AsyncSession,
    sender_id: uuid.UUID,
    room: str,
    text: str | None,
    file: FileRef | None = None,
    reply_to_id: uuid.UUID | None = None,
) -> Message:
    """Persist a room message. Dangling reply targets are stored as given."""
    clean_text = validate_content(text, file)
    msg = Message(
        sender_id=sender_id,
        room=room,
        text=clean_text,
        file_path=file.path if file else None,
        file_name=file.name if file else None,
        file_mime_type=file.mime_type if file else None,
        reply_to_id=reply_to_id,
    )
    db.add(msg)
    await db.flush()
    return msg


async def _load_reply_previews(
    db: AsyncSession, reply_ids: set[uuid.UUID]
) -> dict[uuid.UUID, ReplyPreview]:
    if not reply_ids:
        return {}
    result = await db.execute(
        select(Message, User.username)
        .join(User, Message.sender_id == User.id, isouter=True)
        .where(Message.id.in_(reply_ids))
    )
    previews: dict[uuid.UUID, ReplyPreview] = {}
    for message, username in result.all():
        previews[message.id] = ReplyPreview(
            id=message.id,
            text=message.text,
            file=_file_ref(message),
            sender_username=username,
        )
    return previews


async def _build_payloads(
    db: AsyncSession, rows: Sequence[tuple[Message, User]]
) -> list[MessageOut]:
    reply_ids = {message.reply_to_id for message, _ in rows if message.reply_to_id}
    previews = await _load_reply_previews(db, reply_ids)
    payloads: list[MessageOut] = []
    for message, sender in rows:
        payloads.append(
            MessageOut(
                id=message.id,
                room=message.room,
                text=message.text,
                file=_file_ref(message),
                sender=SenderOut(
                    id=sender.id,
                    username=sender.username,
                    avatar_url=sender.avatar_url,
                ),
                # Missing targets (deleted or never existed) render as no reply.
                reply_to=previews.get(message.reply_to_id) if message.reply_to_id else None,
                created_at=message.created_at,
            )
        )
    return payloads


async def get_message_payload(db: AsyncSession, message_id: uuid.UUID) -> MessageOut | None:
    """Load one message with its sender and reply preview populated."""
    result = await db.execute(
        select(Message, User)
        .join(User, Message.sender_id == User.id)
        .where(Message.id == message_id)
    )
    rows = result.tuples().all()
    if not rows:
        return None
    payloads = await _build_payloads(db, rows)
    return payloads[0]


async def get_room_messages(db: AsyncSession, room: str) -> list[MessageOut]:
    """Load all messages for a room in chronological order."""
    result = await db.execute(
        select(Message, User)
        .join(User, Message.sender_id == User.id)
        .where(Message.room == room)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return await _build_payloads(db, result.tuples().all())


async def delete_messages(
    db: AsyncSession,
    requester_id: uuid.UUID,
    message_ids: Sequence[uuid.UUID],
) -> int:
    """Delete the requester's messages among ``message_ids``.

    The whole batch is rejected if any referenced message belongs to someone
    else. Ids that do not exist are ignored; the return value is the number
    of rows deleted, so zero means nothing matched.
    """
    if not message_ids:
        return 0

    result = await db.execute(
        select(Message.id, Message.sender_id).where(Message.id.in_(message_ids))
    )
    foreign = [row.id for row in result.all() if row.sender_id != requester_id]
    if foreign:
        raise MessageAuthorizationError(
            "You are not authorized to delete all selected messages.",
            code="not_message_owner",
        )

    deleted = await db.execute(
        delete(Message).where(
            Message.id.in_(message_ids),
            Message.sender_id == requester_id,
        )
    )
    await db.flush()
    return deleted.rowcount or 0
