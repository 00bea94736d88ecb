"""Database initialisation and migration runner."""

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from app.config import settings

logger = logging.getLogger(__name__)


def _build_alembic_config() -> Config:
    backend_dir = Path(__file__).resolve().parents[2]
    cfg = Config(str(backend_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    # alembic.ini only carries a placeholder URL.
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


async def init_db() -> None:
    """Bring the users and messages tables up to the latest revision."""
    cfg = _build_alembic_config()
    await asyncio.to_thread(command.upgrade, cfg, "head")
    logger.info("Database schema is at head")
