"""Async SQLAlchemy engine and session factory for users and room messages."""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from app.config import settings


def _engine_options(url: str) -> dict:
    # Pooled server connections can go stale between bursts of chat traffic.
    if url.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.sqlalchemy_echo,
    **_engine_options(settings.database_url),
)
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)
