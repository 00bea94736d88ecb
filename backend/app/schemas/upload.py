from pydantic import BaseModel


class FileUploadOut(BaseModel):
    message: str
    path: str
    name: str
    mime_type: str


class AvatarUploadOut(BaseModel):
    message: str
    avatar_url: str
