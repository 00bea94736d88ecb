from app.schemas.user import (
    UserCreate,
    UserLogin,
    UserProfile,
    AuthResponse,
)
from app.schemas.message import (
    FileRef,
    MessageIn,
    SendMessageFrame,
    JoinRoomFrame,
    SenderOut,
    ReplyPreview,
    MessageOut,
    DeleteMessagesIn,
    DeleteMessagesOut,
)
from app.schemas.upload import FileUploadOut, AvatarUploadOut

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserProfile",
    "AuthResponse",
    "FileRef",
    "MessageIn",
    "SendMessageFrame",
    "JoinRoomFrame",
    "SenderOut",
    "ReplyPreview",
    "MessageOut",
    "DeleteMessagesIn",
    "DeleteMessagesOut",
    "FileUploadOut",
    "AvatarUploadOut",
]
