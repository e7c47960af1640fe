"""Test fixtures for the Sealed Share backend."""
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("REDIS_URL", None)

from app.api import deps
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import dispose_engine, get_sessionmaker
from app.integrations import LocalObjectStore
from app.main import app
from app.models import User
from app.security.hashing import get_password_hash
from app.services import notification_service


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest_asyncio.fixture()
async def session(reset_database: None, db_url: str) -> AsyncIterator[AsyncSession]:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as db_session:
        yield db_session


@pytest.fixture()
def object_store(tmp_path: Path) -> LocalObjectStore:
    return LocalObjectStore("test-bucket", root=tmp_path / "storage")


@pytest.fixture()
def sent_emails(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture outbound email instead of queueing SMTP delivery."""
    outbox: list[dict[str, Any]] = []

    def _capture(background_tasks, *, recipients, subject, html) -> None:  # type: ignore[no-untyped-def]
        outbox.append({"recipients": list(recipients), "subject": subject, "html": html})

    monkeypatch.setattr(notification_service, "schedule_email", _capture)
    return outbox


@pytest.fixture()
def make_user(db_url: str) -> Callable[..., Any]:
    """Insert a user directly, bypassing registration."""

    async def _make_user(
        email: str = "owner@example.com",
        password: str = "pw1",
        *,
        name: str = "Owner",
        is_verified: bool = True,
    ) -> User:
        sessionmaker = get_sessionmaker(db_url)
        async with sessionmaker() as db_session:
            user = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(password),
                is_verified=is_verified,
            )
            db_session.add(user)
            await db_session.commit()
            return user

    return _make_user


@pytest_asyncio.fixture()
async def app_context(
    reset_database: None,
    object_store: LocalObjectStore,
    sent_emails: list[dict[str, Any]],
) -> AsyncIterator[dict[str, Any]]:
    """Yield an async client wired to the temporary database and store."""
    app.dependency_overrides[deps.get_object_store] = lambda: object_store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield {"client": client, "store": object_store, "emails": sent_emails}
    finally:
        app.dependency_overrides.pop(deps.get_object_store, None)
