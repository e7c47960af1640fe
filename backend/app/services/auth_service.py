"""Account flows: registration, email verification, login and password reset."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.errors import (
    AlreadyVerified,
    IncorrectPassword,
    NotVerified,
    UserNotFound,
)
from app.core.security import create_access_token
from app.models.token import TokenType
from app.models.user import User
from app.security.hashing import get_password_hash, verify_password
from app.security.redact import mask_email
from app.services import token_service, user_service

logger = logging.getLogger(__name__)


async def register_user(
    session: AsyncSession, *, name: str, email: str, password: str
) -> tuple[User, str]:
    """Create an unverified user and issue the first verification token."""
    user = await user_service.create_user(
        session, name=name, email=email, password=password
    )
    token = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION
    )
    logger.info("Registered user %s (%s)", user.id, mask_email(user.email))
    return user, token


async def request_verification(
    session: AsyncSession, *, email: str, now: datetime | None = None
) -> tuple[User, str]:
    user = await user_service.get_user_by_email(session, email)
    if user is None:
        raise UserNotFound()
    if user.is_verified:
        raise AlreadyVerified()
    token = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION, now=now
    )
    return user, token


async def verify_email(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    token: str,
    now: datetime | None = None,
) -> User:
    """Consume a verification token and mark its owner verified."""

    async def _mark_verified(user: User) -> None:
        if user.is_verified:
            raise AlreadyVerified()
        user.is_verified = True

    user = await token_service.redeem_token(
        session,
        user_id=user_id,
        token_type=TokenType.EMAIL_VERIFICATION,
        candidate=token,
        apply=_mark_verified,
        now=now,
    )
    logger.info("Verified email for user %s", user.id)
    return user


async def authenticate(session: AsyncSession, *, email: str, password: str) -> str:
    """Check credentials and return a bearer token for a verified user."""
    user = await user_service.get_user_by_email(session, email)
    if user is None:
        raise UserNotFound()
    matches = await run_in_threadpool(verify_password, password, user.hashed_password)
    if not matches:
        logger.warning("Failed login for %s", mask_email(user.email))
        raise IncorrectPassword()
    if not user.is_verified:
        raise NotVerified()
    return create_access_token(user.id)


async def request_password_reset(
    session: AsyncSession, *, email: str, now: datetime | None = None
) -> tuple[User, str]:
    user = await user_service.get_user_by_email(session, email)
    if user is None:
        raise UserNotFound()
    token = await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD, now=now
    )
    return user, token


async def reset_password(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    token: str,
    new_password: str,
    now: datetime | None = None,
) -> User:
    """Consume a reset token and replace the stored password hash."""

    async def _replace_password(user: User) -> None:
        user.hashed_password = await run_in_threadpool(get_password_hash, new_password)

    user = await token_service.redeem_token(
        session,
        user_id=user_id,
        token_type=TokenType.FORGOT_PASSWORD,
        candidate=token,
        apply=_replace_password,
        now=now,
    )
    logger.info("Password reset for user %s", user.id)
    return user
