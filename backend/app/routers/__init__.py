from app.routers.auth import router as auth_router
from app.routers.messages import router as messages_router
from app.routers.upload import router as upload_router
from app.routers.ws import router as ws_router

__all__ = [
    "auth_router",
    "messages_router",
    "upload_router",
    "ws_router",
]
