"""Shared file schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.shared_file import FileStatus


class UploadResponse(BaseModel):
    id: uuid.UUID
    message: str = "File uploaded successfully"


class DownloadRequest(BaseModel):
    """Public download request; the id is parsed by the service."""

    file_id: str = Field(min_length=1)
    password: str | None = None


class DownloadEntryRead(BaseModel):
    downloaded_at: datetime
    requester_ip: str | None = None
    user_agent: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SharedFileRead(BaseModel):
    """Owner-facing view of an uploaded file."""

    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    size_bytes: int
    storage_handle: str
    mime_type: str
    status: FileStatus
    is_password_protected: bool
    uploaded_at: datetime
    expires_at: datetime
    max_downloads: int
    download_count: int
    download_history: list[DownloadEntryRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class UserFilesResponse(BaseModel):
    files: list[SharedFileRead]
