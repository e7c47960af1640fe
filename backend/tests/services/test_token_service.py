"""Ephemeral token issuance, cooldown, expiry and redemption."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.core.errors import CooldownActive, InvalidToken, NoSuchToken, TokenExpired
from app.db.session import get_sessionmaker
from app.models import TokenType, User
from app.services import token_service

pytestmark = pytest.mark.asyncio


async def _mark_verified(user: User) -> None:
    user.is_verified = True


async def test_token_is_single_use(session, make_user) -> None:
    user = await make_user(is_verified=False)
    raw = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION
    )

    redeemed = await token_service.redeem_token(
        session,
        user_id=user.id,
        token_type=TokenType.EMAIL_VERIFICATION,
        candidate=raw,
        apply=_mark_verified,
    )
    assert redeemed.is_verified is True

    with pytest.raises(NoSuchToken):
        await token_service.redeem_token(
            session,
            user_id=user.id,
            token_type=TokenType.EMAIL_VERIFICATION,
            candidate=raw,
            apply=_mark_verified,
        )


async def test_cleartext_is_not_stored(session, make_user) -> None:
    user = await make_user()
    raw = await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD
    )
    stored = await token_service.get_pending_token(
        session, user_id=user.id, token_type=TokenType.FORGOT_PASSWORD
    )
    assert stored is not None
    assert stored.hashed_token != raw
    assert stored.hashed_token.startswith("$argon2id$")


async def test_cooldown_blocks_reissue(session, make_user) -> None:
    user = await make_user()
    now = datetime.now(UTC)
    await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION, now=now
    )

    with pytest.raises(CooldownActive) as excinfo:
        await token_service.issue_token(
            session,
            user=user,
            token_type=TokenType.EMAIL_VERIFICATION,
            now=now + timedelta(minutes=1),
        )
    assert 0 < excinfo.value.retry_after_seconds <= 4 * 60


async def test_cooldown_is_per_purpose(session, make_user) -> None:
    user = await make_user()
    await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION
    )
    await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD
    )


async def test_reissue_after_cooldown_supersedes_previous(session, make_user) -> None:
    user = await make_user()
    now = datetime.now(UTC)
    first = await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD, now=now - timedelta(minutes=6)
    )
    second = await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD, now=now
    )
    assert first != second

    with pytest.raises(InvalidToken):
        await token_service.verify_token(
            session,
            user_id=user.id,
            token_type=TokenType.FORGOT_PASSWORD,
            candidate=first,
        )
    token = await token_service.verify_token(
        session,
        user_id=user.id,
        token_type=TokenType.FORGOT_PASSWORD,
        candidate=second,
    )
    assert token.user_id == user.id


async def test_expired_token_fails_even_with_correct_value(session, make_user) -> None:
    user = await make_user(is_verified=False)
    issued_at = datetime.now(UTC) - timedelta(minutes=31)
    raw = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION, now=issued_at
    )

    with pytest.raises(TokenExpired):
        await token_service.redeem_token(
            session,
            user_id=user.id,
            token_type=TokenType.EMAIL_VERIFICATION,
            candidate=raw,
            apply=_mark_verified,
        )
    still_there = await token_service.get_pending_token(
        session, user_id=user.id, token_type=TokenType.EMAIL_VERIFICATION
    )
    assert still_there is not None


async def test_wrong_value_does_not_consume(session, make_user) -> None:
    user = await make_user(is_verified=False)
    raw = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION
    )
    with pytest.raises(InvalidToken):
        await token_service.verify_token(
            session,
            user_id=user.id,
            token_type=TokenType.EMAIL_VERIFICATION,
            candidate=raw + "x",
        )
    await token_service.verify_token(
        session,
        user_id=user.id,
        token_type=TokenType.EMAIL_VERIFICATION,
        candidate=raw,
    )


async def test_failed_side_effect_keeps_token(session, make_user, db_url) -> None:
    user = await make_user(is_verified=False)
    raw = await token_service.issue_token(
        session, user=user, token_type=TokenType.EMAIL_VERIFICATION
    )

    async def _explode(_: User) -> None:
        raise RuntimeError("side effect failed")

    with pytest.raises(RuntimeError):
        await token_service.redeem_token(
            session,
            user_id=user.id,
            token_type=TokenType.EMAIL_VERIFICATION,
            candidate=raw,
            apply=_explode,
        )

    async with get_sessionmaker(db_url)() as fresh:
        retry = await token_service.redeem_token(
            fresh,
            user_id=user.id,
            token_type=TokenType.EMAIL_VERIFICATION,
            candidate=raw,
            apply=_mark_verified,
        )
        assert retry.is_verified is True


async def test_delete_expired_tokens(session, make_user) -> None:
    user = await make_user()
    now = datetime.now(UTC)
    await token_service.issue_token(
        session,
        user=user,
        token_type=TokenType.EMAIL_VERIFICATION,
        now=now - timedelta(hours=1),
    )
    await token_service.issue_token(
        session, user=user, token_type=TokenType.FORGOT_PASSWORD, now=now
    )

    removed = await token_service.delete_expired_tokens(session, now=now)
    assert removed == 1
    assert (
        await token_service.get_pending_token(
            session, user_id=user.id, token_type=TokenType.FORGOT_PASSWORD
        )
        is not None
    )
