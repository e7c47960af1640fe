"""Account endpoints: registration, verification, login and password reset."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Query,
    Request,
    Response,
    status,
)
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

from app.api.deps import DbSession
from app.core.config import get_settings
from app.schemas.auth import Token
from app.schemas.user import (
    EmailPayload,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from app.services import auth_service, notification_service

router = APIRouter()

_settings = get_settings()

_SECONDS_PER_UNIT = {
    "second": 1,
    "seconds": 1,
    "minute": 60,
    "minutes": 60,
    "hour": 3600,
    "hours": 3600,
    "day": 86400,
    "days": 86400,
}


def _parse_rate(value: str, *, fallback: tuple[int, int]) -> tuple[int, int]:
    try:
        count_str, window_str = value.split("/", 1)
        count = int(count_str.strip())
    except ValueError:
        return fallback
    seconds = _SECONDS_PER_UNIT.get(window_str.strip().lower(), fallback[1])
    return count, seconds


_LOGIN_LIMIT = _parse_rate(_settings.rate_limit_login, fallback=(10, 60))
_DEFAULT_LIMIT = _parse_rate(_settings.rate_limit_default, fallback=(100, 60))


def _rate_dependency(limit: tuple[int, int]):
    async def _dependency(request: Request, response: Response) -> None:
        if FastAPILimiter.redis is None:
            return None
        limiter = RateLimiter(times=limit[0], seconds=limit[1])
        await limiter(request, response)

    return Depends(_dependency)


_LOGIN_RATE_DEP = _rate_dependency(_LOGIN_LIMIT)
_DEFAULT_RATE_DEP = _rate_dependency(_DEFAULT_LIMIT)


def _queue_verification(
    background_tasks: BackgroundTasks, *, email: str, name: str, user_id: uuid.UUID, token: str
) -> None:
    subject, html = notification_service.build_verification_email(
        name=name, token=token, user_id=user_id
    )
    notification_service.schedule_email(
        background_tasks, recipients=[email], subject=subject, html=html
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
    dependencies=[_DEFAULT_RATE_DEP],
)
async def register(
    payload: RegisterRequest,
    session: DbSession,
    background_tasks: BackgroundTasks,
) -> RegisterResponse:
    user, token = await auth_service.register_user(
        session, name=payload.name, email=payload.email, password=payload.password
    )
    _queue_verification(
        background_tasks, email=user.email, name=user.name, user_id=user.id, token=token
    )
    return RegisterResponse(
        id=user.id,
        message="Account created. Check your inbox to verify your email address.",
    )


@router.post(
    "/send-verification-email",
    response_model=MessageResponse,
    summary="Send a fresh verification email",
    dependencies=[_DEFAULT_RATE_DEP],
)
async def send_verification_email(
    payload: EmailPayload,
    session: DbSession,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    user, token = await auth_service.request_verification(session, email=payload.email)
    _queue_verification(
        background_tasks, email=user.email, name=user.name, user_id=user.id, token=token
    )
    return MessageResponse(message="Verification email sent")


@router.get("/verify", response_model=MessageResponse, summary="Verify an email address")
async def verify(
    session: DbSession,
    token: Annotated[str, Query(min_length=1)],
    user: Annotated[uuid.UUID, Query()],
) -> MessageResponse:
    await auth_service.verify_email(session, user_id=user, token=token)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/login",
    response_model=Token,
    summary="Obtain an access token",
    dependencies=[_LOGIN_RATE_DEP],
)
async def login(payload: LoginRequest, session: DbSession) -> Token:
    access_token = await auth_service.authenticate(
        session, email=payload.email, password=payload.password
    )
    return Token(token=access_token)


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Email a password reset link",
    dependencies=[_DEFAULT_RATE_DEP],
)
async def forgot_password(
    payload: EmailPayload,
    session: DbSession,
    background_tasks: BackgroundTasks,
) -> MessageResponse:
    user, token = await auth_service.request_password_reset(session, email=payload.email)
    subject, html = notification_service.build_password_reset_email(
        name=user.name, token=token, user_id=user.id
    )
    notification_service.schedule_email(
        background_tasks, recipients=[user.email], subject=subject, html=html
    )
    return MessageResponse(message="Password reset email sent")


@router.put(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a reset token",
)
async def reset_password(
    payload: ResetPasswordRequest,
    session: DbSession,
    token: Annotated[str, Query(min_length=1)],
    user: Annotated[uuid.UUID, Query()],
) -> MessageResponse:
    await auth_service.reset_password(
        session, user_id=user, token=token, new_password=payload.new_password
    )
    return MessageResponse(message="Password updated successfully")
