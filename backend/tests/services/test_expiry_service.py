"""Background collection of expired and exhausted shares."""

from __future__ import annotations

import threading
import time
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from app.core.config import get_settings
from app.core.errors import StorageError, StorageObjectNotFound
from app.db.session import get_sessionmaker
from app.models import FileStatus, TokenType
from app.services import expiry_service, file_service, token_service

pytestmark = pytest.mark.asyncio


class RecordingStore:
    """Object store double that records delete calls."""

    def __init__(self, *, missing: bool = False, failing: bool = False) -> None:
        self.deleted: list[str] = []
        self.missing = missing
        self.failing = failing

    def put_object(self, key: str, data: bytes, *, content_type: str = "") -> str:
        return key

    def get_object(self, handle: str) -> bytes:
        raise StorageObjectNotFound(handle)

    def delete_object(self, handle: str) -> None:
        self.deleted.append(handle)
        if self.failing:
            raise StorageError("backend unavailable")
        if self.missing:
            raise StorageObjectNotFound(handle)


class StallingStore(RecordingStore):
    """Object store double whose delete hangs for one handle."""

    def __init__(self, stalled_handle: str) -> None:
        super().__init__()
        self.stalled_handle = stalled_handle
        self.release = threading.Event()

    def delete_object(self, handle: str) -> None:
        if handle == self.stalled_handle:
            self.release.wait(timeout=3)
            return
        super().delete_object(handle)


async def _expired_file(session, owner_id: uuid.UUID, now: datetime):
    return await file_service.create_file(
        session,
        owner_id=owner_id,
        name="old.txt",
        mime_type="text/plain",
        size=10,
        max_downloads=3,
        expires_at=now + timedelta(minutes=1),
        storage_handle=f"files/{owner_id}/{uuid.uuid4().hex}",
        now=now,
    )


async def test_sweep_purges_expired_file_once(session, make_user, db_url) -> None:
    owner = await make_user()
    created_at = datetime.now(UTC)
    record = await _expired_file(session, owner.id, created_at)
    store = RecordingStore()

    report = await expiry_service.sweep(
        created_at + timedelta(minutes=2),
        sessionmaker=get_sessionmaker(db_url),
        store=store,
    )

    assert store.deleted == [record.storage_handle]
    assert report.examined == 1
    assert report.purged == 1
    async with get_sessionmaker(db_url)() as check:
        assert await file_service.get_file(check, record.id) is None

    again = await expiry_service.sweep(
        created_at + timedelta(minutes=3),
        sessionmaker=get_sessionmaker(db_url),
        store=store,
    )
    assert again.examined == 0
    assert store.deleted == [record.storage_handle]


async def test_sweep_leaves_live_files_alone(session, make_user, db_url) -> None:
    owner = await make_user()
    now = datetime.now(UTC)
    record = await _expired_file(session, owner.id, now)
    store = RecordingStore()

    report = await expiry_service.sweep(
        now, sessionmaker=get_sessionmaker(db_url), store=store
    )

    assert report.examined == 0
    assert store.deleted == []
    async with get_sessionmaker(db_url)() as check:
        assert await file_service.get_file(check, record.id) is not None


async def test_missing_blob_counts_as_deleted(session, make_user, db_url) -> None:
    owner = await make_user()
    now = datetime.now(UTC)
    record = await _expired_file(session, owner.id, now)

    report = await expiry_service.sweep(
        now + timedelta(minutes=5),
        sessionmaker=get_sessionmaker(db_url),
        store=RecordingStore(missing=True),
    )

    assert report.purged == 1
    async with get_sessionmaker(db_url)() as check:
        assert await file_service.get_file(check, record.id) is None


async def test_failed_delete_keeps_record_for_retry(session, make_user, db_url) -> None:
    owner = await make_user()
    now = datetime.now(UTC)
    record = await _expired_file(session, owner.id, now)

    report = await expiry_service.sweep(
        now + timedelta(minutes=5),
        sessionmaker=get_sessionmaker(db_url),
        store=RecordingStore(failing=True),
    )

    assert report.failed == 1
    assert report.purged == 0
    async with get_sessionmaker(db_url)() as check:
        assert await file_service.get_file(check, record.id) is not None

    retry = await expiry_service.sweep(
        now + timedelta(minutes=6),
        sessionmaker=get_sessionmaker(db_url),
        store=RecordingStore(),
    )
    assert retry.purged == 1


async def test_slow_delete_times_out_without_blocking_others(
    session, make_user, db_url, monkeypatch
) -> None:
    monkeypatch.setattr(get_settings(), "storage_delete_timeout_seconds", 0.2)
    owner = await make_user()
    now = datetime.now(UTC)
    stuck = await _expired_file(session, owner.id, now)
    other = await _expired_file(session, owner.id, now)
    store = StallingStore(stuck.storage_handle)

    started = time.perf_counter()
    try:
        report = await expiry_service.sweep(
            now + timedelta(minutes=5),
            sessionmaker=get_sessionmaker(db_url),
            store=store,
        )
    finally:
        store.release.set()
    elapsed = time.perf_counter() - started

    assert elapsed < 2
    assert report.examined == 2
    assert report.failed == 1
    assert report.purged == 1
    assert store.deleted == [other.storage_handle]
    async with get_sessionmaker(db_url)() as check:
        assert await file_service.get_file(check, stuck.id) is not None
        assert await file_service.get_file(check, other.id) is None


async def test_stale_pending_upload_is_collected(session, make_user, db_url) -> None:
    owner = await make_user()
    now = datetime.now(UTC)
    record = await file_service.create_file(
        session,
        owner_id=owner.id,
        name="half.bin",
        mime_type="application/octet-stream",
        size=4,
        max_downloads=1,
        expires_at=now + timedelta(days=1),
        storage_handle="files/pending/half",
        status=FileStatus.PENDING,
        now=now,
    )
    store = RecordingStore(missing=True)

    early = await expiry_service.sweep(
        now + timedelta(minutes=5), sessionmaker=get_sessionmaker(db_url), store=store
    )
    assert early.examined == 0

    late = await expiry_service.sweep(
        now + timedelta(minutes=20), sessionmaker=get_sessionmaker(db_url), store=store
    )
    assert late.purged == 1
    assert store.deleted == [record.storage_handle]


async def test_sweep_removes_expired_tokens(session, make_user, db_url) -> None:
    owner = await make_user()
    now = datetime.now(UTC)
    await token_service.issue_token(
        session, user=owner, token_type=TokenType.EMAIL_VERIFICATION, now=now
    )

    report = await expiry_service.sweep(
        now + timedelta(hours=1),
        sessionmaker=get_sessionmaker(db_url),
        store=RecordingStore(),
    )
    assert report.tokens_removed == 1


async def test_scheduler_registers_single_interval_job() -> None:
    store = RecordingStore()
    expiry_service.start_scheduler(store=store)
    try:
        scheduler = expiry_service.get_scheduler()
        assert scheduler is not None and scheduler.running
        job = scheduler.get_job(expiry_service.JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.kwargs == {"store": store}
    finally:
        expiry_service.stop_scheduler()
    assert expiry_service.get_scheduler() is None
