"""Common API dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Unauthorized
from app.core.security import decode_access_token
from app.db.session import get_session
from app.integrations import ObjectStore, build_object_store
from app.models.user import User
from app.services import user_service

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


@lru_cache
def _build_object_store() -> ObjectStore:
    return build_object_store()


def get_object_store() -> ObjectStore:
    """Return the process-wide object store for blob persistence."""
    return _build_object_store()


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> User:
    """Authenticate the request via its bearer token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Missing bearer token")

    user_id = decode_access_token(credentials.credentials)
    user = await user_service.get_user(session, user_id)
    if user is None:
        raise Unauthorized("User no longer exists")
    if not user.is_verified:
        raise Unauthorized("User is not verified")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Store = Annotated[ObjectStore, Depends(get_object_store)]
