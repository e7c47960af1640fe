"""Background collector for expired and exhausted file shares.

Every sweep removes the stored blob first and the database record second, so a
failed storage delete leaves the record in place for the next run.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.core.errors import StorageError, StorageObjectNotFound
from app.db.session import get_sessionmaker
from app.integrations import ObjectStore, build_object_store
from app.models.shared_file import SharedFile
from app.services import file_service, token_service

logger = logging.getLogger(__name__)

JOB_ID = "expiry_sweep"

_scheduler: AsyncIOScheduler | None = None


@dataclass
class SweepReport:
    examined: int = 0
    purged: int = 0
    failed: int = 0
    tokens_removed: int = 0


async def _delete_blob(
    store: ObjectStore, file_id: uuid.UUID, handle: str, timeout: float
) -> bool:
    try:
        await asyncio.wait_for(
            run_in_threadpool(store.delete_object, handle), timeout=timeout
        )
    except StorageObjectNotFound:
        logger.info("Blob for file %s already gone", file_id)
    except asyncio.TimeoutError:
        logger.warning("Timed out deleting blob for file %s", file_id)
        return False
    except StorageError as exc:
        logger.warning("Could not delete blob for file %s: %s", file_id, exc.message)
        return False
    return True


async def _purge_file(
    session: AsyncSession,
    store: ObjectStore,
    file_id: uuid.UUID,
    handle: str,
    timeout: float,
) -> bool:
    if not await _delete_blob(store, file_id, handle, timeout):
        return False
    try:
        await session.execute(delete(SharedFile).where(SharedFile.id == file_id))
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Could not delete record for file %s", file_id)
        return False
    logger.info("Purged file %s", file_id)
    return True


async def sweep(
    now: datetime | None = None,
    *,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    store: ObjectStore | None = None,
) -> SweepReport:
    """Run one collection pass and report what happened."""
    settings = get_settings()
    now = now or datetime.now(UTC)
    sessionmaker = sessionmaker or get_sessionmaker()
    store = store or build_object_store()
    timeout = settings.storage_delete_timeout_seconds
    report = SweepReport()

    async with sessionmaker() as session:
        candidates = await file_service.list_purgeable(
            session,
            now=now,
            pending_timeout=timedelta(minutes=settings.pending_upload_timeout_minutes),
        )
        targets = [(item.id, item.storage_handle) for item in candidates]
        report.examined = len(targets)
        for file_id, handle in targets:
            if await _purge_file(session, store, file_id, handle, timeout):
                report.purged += 1
            else:
                report.failed += 1

        try:
            report.tokens_removed = await token_service.delete_expired_tokens(
                session, now=now
            )
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Could not remove expired tokens")

    if report.examined or report.tokens_removed:
        logger.info(
            "Sweep finished: examined=%d purged=%d failed=%d tokens=%d",
            report.examined,
            report.purged,
            report.failed,
            report.tokens_removed,
        )
    return report


async def _scheduled_sweep(store: ObjectStore) -> None:
    try:
        await sweep(store=store)
    except Exception:
        logger.exception("Expiry sweep crashed")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler


def start_scheduler(store: ObjectStore | None = None) -> None:
    """Start the periodic sweep on the running event loop.

    The object store is built once here and shared by every run of the job.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Expiry scheduler is already running")
        return

    settings = get_settings()
    _scheduler = AsyncIOScheduler(
        job_defaults={"coalesce": True, "max_instances": 1},
        timezone="UTC",
    )
    _scheduler.add_job(
        _scheduled_sweep,
        trigger="interval",
        seconds=settings.expiry_sweep_interval_seconds,
        kwargs={"store": store or build_object_store()},
        id=JOB_ID,
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(
        "Expiry scheduler started (every %ss)", settings.expiry_sweep_interval_seconds
    )


def stop_scheduler() -> None:
    global _scheduler

    if _scheduler is None:
        return
    try:
        if _scheduler.running:
            _scheduler.shutdown(wait=False)
            logger.info("Expiry scheduler stopped")
    finally:
        _scheduler = None
