"""ORM models package export."""

from app.models.shared_file import FileDownload, FileStatus, SharedFile
from app.models.token import Token, TokenType
from app.models.user import User

__all__ = [
    "FileDownload",
    "FileStatus",
    "SharedFile",
    "Token",
    "TokenType",
    "User",
]
