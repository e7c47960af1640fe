"""Stateless bearer tokens signed with the server secret."""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.errors import Unauthorized


def create_access_token(
    subject: uuid.UUID | str,
    expires_delta: timedelta | None = None,
    *,
    now: datetime | None = None,
) -> str:
    """Create a JWT carrying the user id, issue time and expiry."""
    settings = get_settings()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    issued_at = now or datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + expires_delta,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Verify signature and expiry, returning the user id from the subject."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise Unauthorized(f"Invalid token: {exc}") from exc

    subject = payload.get("sub")
    if subject is None:
        raise Unauthorized("Token has no subject")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise Unauthorized("Token subject is not a user id") from exc
