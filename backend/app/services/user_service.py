"""User data access helpers."""
from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.errors import DatabaseError, DuplicateEmail
from app.models.user import User
from app.security.hashing import get_password_hash


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    """Return a user by email address."""
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User | None:
    """Return a user by ID."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession, *, name: str, email: str, password: str
) -> User:
    """Persist a new, unverified user with a hashed password."""
    email = email.lower()
    if await get_user_by_email(session, email) is not None:
        raise DuplicateEmail(email)

    hashed_password = await run_in_threadpool(get_password_hash, password)
    user = User(
        name=name,
        email=email,
        hashed_password=hashed_password,
        is_verified=False,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateEmail(email) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError(f"Unable to create user: {exc}") from exc
    await session.refresh(user)
    return user
