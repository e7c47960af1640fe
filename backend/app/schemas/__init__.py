"""Schema exports."""

from app.schemas.auth import Token
from app.schemas.file import (
    DownloadEntryRead,
    DownloadRequest,
    SharedFileRead,
    UploadResponse,
    UserFilesResponse,
)
from app.schemas.user import (
    EmailPayload,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)

__all__ = [
    "DownloadEntryRead",
    "DownloadRequest",
    "EmailPayload",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "SharedFileRead",
    "Token",
    "UploadResponse",
    "UserFilesResponse",
]
