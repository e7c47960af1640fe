"""Lifecycle of single-use email verification and password reset tokens.

Each (user, purpose) pair holds at most one pending token. Tokens are stored
as Argon2id digests; the cleartext is returned once from :func:`issue_token`
so it can be embedded in an outbound link.
"""
from __future__ import annotations

import logging
import math
import secrets
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.core.errors import (
    CooldownActive,
    DatabaseError,
    InvalidToken,
    NoSuchToken,
    TokenExpired,
)
from app.models.mixins import as_utc
from app.models.token import Token, TokenType
from app.models.user import User
from app.security.hashing import hash_secret, verify_secret

logger = logging.getLogger(__name__)

_TOKEN_BYTES = 32


def _cooldown() -> timedelta:
    return timedelta(minutes=get_settings().token_cooldown_minutes)


def _ttl() -> timedelta:
    return timedelta(minutes=get_settings().token_ttl_minutes)


async def get_pending_token(
    session: AsyncSession, *, user_id: uuid.UUID, token_type: TokenType
) -> Token | None:
    result = await session.execute(
        select(Token).where(Token.user_id == user_id, Token.token_type == token_type)
    )
    return result.scalar_one_or_none()


async def issue_token(
    session: AsyncSession,
    *,
    user: User,
    token_type: TokenType,
    now: datetime | None = None,
) -> str:
    """Replace any previous token for the purpose and return the new cleartext."""
    now = now or datetime.now(UTC)
    existing = await get_pending_token(session, user_id=user.id, token_type=token_type)
    if existing is not None:
        cooldown_ends = as_utc(existing.created_at) + _cooldown()
        if now < cooldown_ends:
            retry_after = math.ceil((cooldown_ends - now).total_seconds())
            raise CooldownActive(max(retry_after, 1))
        await session.delete(existing)
        await session.flush()

    raw_token = secrets.token_urlsafe(_TOKEN_BYTES)
    hashed_token = await run_in_threadpool(hash_secret, raw_token)
    session.add(
        Token(
            user_id=user.id,
            token_type=token_type,
            hashed_token=hashed_token,
            created_at=now,
            expires_at=now + _ttl(),
        )
    )
    try:
        await session.commit()
    except IntegrityError as exc:
        # a concurrent request issued a token for the same purpose first
        await session.rollback()
        raise CooldownActive(int(_cooldown().total_seconds())) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError(f"Unable to store token: {exc}") from exc

    logger.info("Issued %s token for user %s", token_type.value, user.id)
    return raw_token


async def verify_token(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    token_type: TokenType,
    candidate: str,
    now: datetime | None = None,
) -> Token:
    """Validate a candidate without consuming it."""
    now = now or datetime.now(UTC)
    token = await get_pending_token(session, user_id=user_id, token_type=token_type)
    if token is None:
        raise NoSuchToken()
    if as_utc(token.expires_at) <= now:
        raise TokenExpired()
    matches = await run_in_threadpool(verify_secret, token.hashed_token, candidate)
    if not matches:
        raise InvalidToken()
    return token


async def redeem_token(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    token_type: TokenType,
    candidate: str,
    apply: Callable[[User], Awaitable[None]],
    now: datetime | None = None,
) -> User:
    """Verify a token, then apply its side effect and delete it in one commit.

    If applying or committing fails the transaction is rolled back and the
    token stays in place for a retry.
    """
    token = await verify_token(
        session, user_id=user_id, token_type=token_type, candidate=candidate, now=now
    )
    user = await session.get(User, token.user_id)
    if user is None:
        raise NoSuchToken()

    try:
        await apply(user)
        await session.delete(token)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError(f"Unable to redeem token: {exc}") from exc
    except Exception:
        await session.rollback()
        raise

    logger.info("Redeemed %s token for user %s", token_type.value, user.id)
    return user


async def delete_expired_tokens(
    session: AsyncSession, *, now: datetime | None = None
) -> int:
    """Remove tokens whose expiry has passed; returns the number removed."""
    now = now or datetime.now(UTC)
    result = await session.execute(delete(Token).where(Token.expires_at <= now))
    await session.commit()
    return result.rowcount or 0
