"""FastAPI application entry point with startup initialisation and logging."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.db.session import engine
from app.db.init_db import init_db
from app.routers.auth import router as auth_router
from app.routers.messages import router as messages_router
from app.routers.upload import router as upload_router
from app.routers.ws import router as ws_router
from app.services.upload_service import PUBLIC_PREFIX, ensure_storage_dir


def _configure_logging() -> None:
    """Set up structured logging for the application."""
    root_logger = logging.getLogger("app")
    root_logger.setLevel(settings.log_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(title="Room Chat", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(messages_router)
app.include_router(upload_router)
app.include_router(ws_router)

# Uploaded chat files and avatars are public by URL.
ensure_storage_dir("")
app.mount(PUBLIC_PREFIX, StaticFiles(directory=settings.upload_storage_dir), name="uploads")


@app.get("/health")
async def health_check():
    """Health check endpoint for probes."""
    return {"status": "healthy"}
