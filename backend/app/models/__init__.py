from app.models.user import User, Base
from app.models.message import Message

__all__ = [
    "User",
    "Base",
    "Message",
]
