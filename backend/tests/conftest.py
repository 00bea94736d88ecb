"""Shared test fixtures and fake transports."""

import uuid

import app.models  # noqa: F401
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.user import Base, User
from app.services.chat_errors import TransportFailure
from app.services.connection_registry import Connection


class RecordingTransport:
    """Transport stub that records pushed events per connection.

    Connection ids listed in ``failing`` raise TransportFailure on push.
    """

    def __init__(self, failing: set[str] | None = None) -> None:
        self.events: dict[str, list[dict]] = {}
        self.failing = failing or set()

    def push(self, connection_id: str, event: dict) -> None:
        if connection_id in self.failing:
            raise TransportFailure(f"{connection_id} is gone", code="connection_closed")
        self.events.setdefault(connection_id, []).append(event)

    def of_type(self, connection_id: str, event_type: str) -> list[dict]:
        return [e for e in self.events.get(connection_id, []) if e["type"] == event_type]

    def clear(self) -> None:
        self.events.clear()


def make_connection(name: str, user_id: str | None = None) -> Connection:
    return Connection(
        connection_id=f"conn-{name}",
        user_id=user_id or f"user-{name}",
        username=name,
        avatar_url=None,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Create an isolated SQLite database with the full schema."""
    db_path = tmp_path / "chat.sqlite3"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield factory
    finally:
        await engine.dispose()


async def create_user(
    factory: async_sessionmaker[AsyncSession],
    username: str | None = None,
) -> User:
    async with factory() as db:
        user = User(
            username=username or f"user_{uuid.uuid4().hex[:8]}",
            password_hash="x",
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user
