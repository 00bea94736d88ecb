"""Password hashing, JWT token creation, and verification."""

from datetime import datetime, timedelta, timezone

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError

from app.config import settings

ALGORITHM = "HS256"


class TokenExpiredError(ValueError):
    """Raised when a structurally valid token is past its expiry."""


def hash_password(plain: str) -> str:
    """Hash a plaintext password using bcrypt."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against a hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        # Invalid/unsupported stored hash should fail closed.
        return False


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create an access token for the HTTP API and live connections."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    expire = datetime.now(timezone.utc) + expires_delta
    payload = {
        "sub": user_id,
        "exp": expire,
        "token_type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
        return payload
    except ExpiredSignatureError as e:
        raise TokenExpiredError(f"Token expired: {e}")
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}")


def user_id_from_access_token(token: str) -> str:
    """Return the subject of an access token, raising ValueError otherwise."""
    payload = decode_token(token)
    if payload.get("token_type") != "access":
        raise ValueError("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Invalid token payload")
    return user_id
