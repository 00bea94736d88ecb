"""Authenticate new live connections before they reach the registry."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import AsyncSessionLocal
from app.models.user import User
from app.services.auth_service import TokenExpiredError, user_id_from_access_token
from app.services.chat_errors import AuthFailure
from app.services.connection_registry import Connection

logger = logging.getLogger(__name__)


class SessionGate:
    """Turn a bearer token into an unregistered Connection, or raise AuthFailure."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory

    async def admit(self, token: str | None, connection_id: str) -> Connection:
        if not token:
            raise AuthFailure("Authentication failed: no token provided", code="missing_token")

        try:
            user_uuid = uuid.UUID(user_id_from_access_token(token))
        except TokenExpiredError:
            raise AuthFailure("Authentication failed: token expired", code="expired_token")
        except ValueError:
            raise AuthFailure("Authentication failed: invalid token", code="invalid_token")

        session_factory = self._session_factory or AsyncSessionLocal
        try:
            async with session_factory() as db:
                result = await db.execute(select(User).where(User.id == user_uuid))
                user = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("User lookup failed for connection %s: %s", connection_id, exc)
            raise AuthFailure(
                "Authentication unavailable, try again later", code="auth_unavailable"
            ) from exc

        if user is None:
            logger.info("Rejected connection %s: user %s not found", connection_id, user_uuid)
            raise AuthFailure("Authentication failed: user not found", code="user_not_found")

        return Connection(
            connection_id=connection_id,
            user_id=str(user.id),
            username=user.username,
            avatar_url=user.avatar_url,
        )
