"""Application settings loaded from environment variables via .env file."""

from pathlib import Path

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = Path(__file__).resolve().parents[1]

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./roomchat.sqlite3"
    sqlalchemy_echo: bool = False

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_access_token_expire_minutes: int = 60

    # CORS (JSON list in the environment, e.g. CORS_ORIGINS='["http://localhost:5173"]')
    cors_origins: list[str] = ["*"]

    # Backend
    backend_reload: bool = False
    log_level: str = "INFO"

    # Live connections
    max_ws_connections_per_user: int = 5
    # Seconds to wait for the first `auth` frame when no query token is given.
    ws_auth_timeout_seconds: float = 8.0

    # Rate limiting (live message sends)
    rate_limit_connection_per_minute: int = 30
    rate_limit_room_per_minute: int = 300

    # Uploads
    upload_storage_dir: str = str(BACKEND_DIR / "uploads")
    upload_max_file_mb: int = 50
    upload_max_avatar_mb: int = 5

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unsupported log level: {value}")
        return level

    model_config = ConfigDict(
        env_file=(str(REPO_ROOT / ".env"), str(BACKEND_DIR / ".env")),
        extra="ignore",
    )


settings = Settings()
