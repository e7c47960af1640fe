"""Application error hierarchy and its HTTP translation."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

_GENERIC_SERVER_MESSAGE = "Something went wrong, please try again later"


class AppError(Exception):
    """Base class for every error the API reports to clients."""

    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        if self.status_code >= 500:
            return _GENERIC_SERVER_MESSAGE
        return self.message


class ValidationFailed(AppError):
    kind = "Validation"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request validation failed"

    def __init__(self, message: str | None = None, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class Unauthorized(AppError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class BadRequest(AppError):
    kind = "BadRequest"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class DuplicateEmail(BadRequest):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Email already registered"

    def __init__(self, email: str) -> None:
        super().__init__()
        self.email = email


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
class UserNotFound(BadRequest):
    default_message = "User not found"


class AlreadyVerified(BadRequest):
    default_message = "User is already verified"


class NotVerified(BadRequest):
    default_message = "User is not verified"


class IncorrectPassword(BadRequest):
    default_message = "Incorrect email or password"


# ----------------------------------------------------------------------
# Ephemeral tokens
# ----------------------------------------------------------------------
class TokenError(BadRequest):
    default_message = "Token rejected"


class CooldownActive(TokenError):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            f"A token was issued recently, try again in {retry_after_seconds} seconds"
        )
        self.retry_after_seconds = retry_after_seconds


class NoSuchToken(TokenError):
    default_message = "No pending token for this user"


class TokenExpired(TokenError):
    default_message = "Token has expired"


class InvalidToken(TokenError):
    default_message = "Token is invalid"


# ----------------------------------------------------------------------
# Files
# ----------------------------------------------------------------------
class FileError(BadRequest):
    default_message = "File unavailable"

    def __init__(self, file_id: uuid.UUID | str | None = None) -> None:
        super().__init__()
        self.file_id = file_id


class FileNotFound(FileError):
    default_message = "File not found"


class FileExpired(FileError):
    default_message = "File has expired"


class QuotaExceeded(FileError):
    default_message = "Download limit reached for this file"


class IncorrectFilePassword(FileError):
    default_message = "Incorrect password for this file"


# ----------------------------------------------------------------------
# Infrastructure
# ----------------------------------------------------------------------
class HashingError(AppError):
    kind = "Hashing"
    default_message = "Hashing failed"


class CryptoError(AppError):
    kind = "Crypto"
    default_message = "Cryptographic operation failed"


class TruncatedInput(CryptoError):
    def __init__(self, length: int) -> None:
        super().__init__(f"Encrypted payload too short ({length} bytes)")
        self.length = length


class DecryptionFailed(CryptoError):
    default_message = "Authentication of encrypted payload failed"


class DatabaseError(AppError):
    kind = "Database"
    default_message = "Database operation failed"


class StorageError(AppError):
    kind = "Storage"
    default_message = "Storage operation failed"


class StorageObjectNotFound(StorageError):
    def __init__(self, handle: str) -> None:
        super().__init__(f"Object {handle} not found")
        self.handle = handle


def error_body(kind: str, message: str) -> dict[str, Any]:
    return {"kind": kind, "message": message}


async def _handle_app_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, AppError)
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s: %s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc.message,
        )
    else:
        logger.warning(
            "%s %s rejected: %s: %s",
            request.method,
            request.url.path,
            type(exc).__name__,
            exc.message,
        )
    headers = None
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}
    elif isinstance(exc, CooldownActive):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.kind, exc.public_message),
        headers=headers,
    )


async def _handle_request_validation(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    message = "; ".join(str(item) for item in messages) or "Invalid request"
    logger.warning("%s %s rejected: %s", request.method, request.url.path, message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationFailed.kind, message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error translators to the application."""
    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)


__all__ = [
    "AppError",
    "AlreadyVerified",
    "BadRequest",
    "CooldownActive",
    "CryptoError",
    "DatabaseError",
    "DecryptionFailed",
    "DuplicateEmail",
    "FileError",
    "FileExpired",
    "FileNotFound",
    "HashingError",
    "IncorrectFilePassword",
    "IncorrectPassword",
    "InvalidToken",
    "NoSuchToken",
    "NotVerified",
    "QuotaExceeded",
    "StorageError",
    "StorageObjectNotFound",
    "TokenError",
    "TokenExpired",
    "TruncatedInput",
    "Unauthorized",
    "UserNotFound",
    "ValidationFailed",
    "register_exception_handlers",
]
