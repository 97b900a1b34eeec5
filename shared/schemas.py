from typing import Optional
from pydantic import BaseModel, Field


class UploadRequest(BaseModel):
    user_id: str
    buffer: bytes
    file_name: str
    base_path: str
    content_type: Optional[str] = None


class SignedUrlRequest(BaseModel):
    user_id: str
    file_name: str
    base_path: str


class RefreshUrlRequest(BaseModel):
    url: str
    threshold_seconds: Optional[int] = Field(default=None, ge=0)


class StoredFileResponse(BaseModel):
    key: str
    url: str


class RefreshUrlResponse(BaseModel):
    url: str
    refreshed: bool
