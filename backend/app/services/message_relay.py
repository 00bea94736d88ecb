"""Validate, persist, and fan out messages sent over live connections."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.db.session import AsyncSessionLocal
from app.schemas.message import MessageIn, MessageOut
from app.services import message_service
from app.services.chat_errors import (
    MessageAuthorizationError,
    PersistenceFailure,
)
from app.services.connection_registry import ConnectionRegistry
from app.services.outbound import Transport, deliver
from app.services.rate_limiter import SendThrottle

logger = logging.getLogger(__name__)


class MessageRelay:
    """Deliver each message to every connection currently in its room.

    Persistence and fan-out for a room run under that room's lock, so members
    receive a room's messages in persistence order. Different rooms do not
    block each other. A room's lock lives only while a send holds or awaits it.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport,
        session_factory=None,
        throttle: SendThrottle | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._session_factory = session_factory
        self._throttle = throttle
        self._room_locks: dict[str, asyncio.Lock] = {}
        self._room_lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _room_lock(self, room: str):
        lock = self._room_locks.get(room)
        if lock is None:
            lock = self._room_locks[room] = asyncio.Lock()
            self._room_lock_users[room] = 0
        self._room_lock_users[room] += 1
        try:
            async with lock:
                yield
        finally:
            self._room_lock_users[room] -= 1
            if self._room_lock_users[room] == 0:
                del self._room_lock_users[room]
                del self._room_locks[room]

    def locked_rooms(self) -> list[str]:
        return list(self._room_locks)

    async def send(self, connection_id: str, payload: MessageIn) -> MessageOut:
        sender = self._registry.get(connection_id)
        if sender is None:
            raise MessageAuthorizationError(
                "Connection is no longer active.", code="not_connected"
            )
        if sender.current_room != payload.room:
            raise MessageAuthorizationError(
                f"Join room '{payload.room}' before sending to it.", code="not_in_room"
            )
        text = message_service.validate_content(payload.text, payload.file)
        if self._throttle is not None:
            self._throttle.check(connection_id, payload.room)

        session_factory = self._session_factory or AsyncSessionLocal
        async with self._room_lock(payload.room):
            try:
                async with session_factory() as db:
                    message = await message_service.create_message(
                        db,
                        uuid.UUID(sender.user_id),
                        payload.room,
                        text,
                        file=payload.file,
                        reply_to_id=payload.reply_to,
                    )
                    # Render before committing so a failure here leaves nothing stored.
                    outbound = await message_service.get_message_payload(db, message.id)
                    if outbound is None:
                        await db.rollback()
                        raise PersistenceFailure("Failed to send message.")
                    await db.commit()
            except SQLAlchemyError as exc:
                logger.error(
                    "Failed to persist message from %s in room %s: %s",
                    sender.username,
                    payload.room,
                    exc,
                )
                raise PersistenceFailure("Failed to send message.") from exc

            # Re-read membership: the room may have changed during the write.
            recipients = [item.connection_id for item in self._registry.list_room(payload.room)]
            delivered = deliver(
                self._transport,
                recipients,
                {"type": "newMessage", "message": outbound.model_dump(mode="json")},
            )
            logger.debug(
                "Relayed message %s in room %s to %d/%d connections",
                outbound.id,
                payload.room,
                delivered,
                len(recipients),
            )
        return outbound
