"""Shared file records: creation, download authorization and history."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    DatabaseError,
    FileExpired,
    FileNotFound,
    QuotaExceeded,
    ValidationFailed,
)
from app.models.mixins import as_utc
from app.models.shared_file import FileDownload, FileStatus, SharedFile

logger = logging.getLogger(__name__)

MIN_DOWNLOADS = 1
MAX_DOWNLOADS = 10


def validate_limits(
    *, max_downloads: int, expires_at: datetime, now: datetime | None = None
) -> None:
    """Reject quotas outside 1..10 and expiries that are not in the future."""
    now = now or datetime.now(UTC)
    if not MIN_DOWNLOADS <= max_downloads <= MAX_DOWNLOADS:
        raise ValidationFailed(
            f"max_downloads must be between {MIN_DOWNLOADS} and {MAX_DOWNLOADS}",
            field="max_downloads",
        )
    if expires_at.tzinfo is None:
        raise ValidationFailed("expires_at must include a timezone", field="expires_at")
    if expires_at <= now:
        raise ValidationFailed("expires_at must be in the future", field="expires_at")


def parse_file_id(raw: str | uuid.UUID) -> uuid.UUID:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(raw.strip())
    except (ValueError, AttributeError) as exc:
        raise FileNotFound(raw) from exc


async def _commit(session: AsyncSession, action: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError(f"Unable to {action}: {exc}") from exc


async def create_file(
    session: AsyncSession,
    *,
    owner_id: uuid.UUID,
    name: str,
    mime_type: str,
    size: int,
    max_downloads: int,
    expires_at: datetime,
    storage_handle: str,
    is_password_protected: bool = True,
    status: FileStatus = FileStatus.ACTIVE,
    file_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> SharedFile:
    """Persist file metadata once the limits have been validated."""
    now = now or datetime.now(UTC)
    validate_limits(max_downloads=max_downloads, expires_at=expires_at, now=now)
    shared_file = SharedFile(
        id=file_id or uuid.uuid4(),
        user_id=owner_id,
        name=name,
        mime_type=mime_type,
        size_bytes=size,
        storage_handle=storage_handle,
        status=status,
        is_password_protected=is_password_protected,
        uploaded_at=now,
        expires_at=expires_at,
        max_downloads=max_downloads,
        download_count=0,
    )
    session.add(shared_file)
    await _commit(session, "store file metadata")
    return shared_file


async def activate_file(session: AsyncSession, shared_file: SharedFile) -> SharedFile:
    """Confirm a write-ahead record after its blob has been stored."""
    shared_file.status = FileStatus.ACTIVE
    await _commit(session, "confirm upload")
    return shared_file


async def discard_file(session: AsyncSession, shared_file: SharedFile) -> None:
    await session.delete(shared_file)
    await _commit(session, "discard file metadata")


async def get_file(session: AsyncSession, file_id: uuid.UUID) -> SharedFile | None:
    result = await session.execute(select(SharedFile).where(SharedFile.id == file_id))
    return result.scalar_one_or_none()


async def authorize_download(
    session: AsyncSession,
    file_id: str | uuid.UUID,
    *,
    now: datetime | None = None,
) -> SharedFile:
    """Return the file if it can still be downloaded. Changes nothing."""
    now = now or datetime.now(UTC)
    parsed_id = parse_file_id(file_id)
    shared_file = await get_file(session, parsed_id)
    if shared_file is None or shared_file.status != FileStatus.ACTIVE:
        raise FileNotFound(parsed_id)
    if now >= as_utc(shared_file.expires_at):
        raise FileExpired(parsed_id)
    if shared_file.download_count >= shared_file.max_downloads:
        raise QuotaExceeded(parsed_id)
    return shared_file


async def record_download(
    session: AsyncSession,
    shared_file: SharedFile,
    *,
    requester_ip: str | None,
    user_agent: str | None,
    now: datetime | None = None,
) -> SharedFile:
    """Count a served download with a compare-and-swap on the counter.

    A swap that loses to another download is retried against the fresh count,
    so only a full quota turns into ``QuotaExceeded``.
    """
    now = now or datetime.now(UTC)
    file_id = shared_file.id
    observed = shared_file.download_count
    limit = shared_file.max_downloads
    while True:
        if observed >= limit:
            await session.rollback()
            raise QuotaExceeded(file_id)
        result = await session.execute(
            update(SharedFile)
            .where(
                SharedFile.id == file_id,
                SharedFile.download_count == observed,
                SharedFile.download_count < SharedFile.max_downloads,
            )
            .values(download_count=observed + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            break
        current = await session.scalar(
            select(SharedFile.download_count).where(SharedFile.id == file_id)
        )
        if current is None:
            await session.rollback()
            raise FileNotFound(file_id)
        logger.debug("Counter for file %s moved from %d to %d", file_id, observed, current)
        observed = current

    session.add(
        FileDownload(
            file_id=file_id,
            downloaded_at=now,
            requester_ip=requester_ip,
            user_agent=user_agent,
        )
    )
    await _commit(session, "record download")
    await session.refresh(shared_file, attribute_names=["download_count", "download_history"])
    return shared_file


async def list_by_owner(
    session: AsyncSession, owner_id: uuid.UUID
) -> list[SharedFile]:
    result = await session.execute(
        select(SharedFile).where(
            SharedFile.user_id == owner_id, SharedFile.status == FileStatus.ACTIVE
        )
    )
    return list(result.scalars().all())


async def list_purgeable(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    pending_timeout: timedelta | None = None,
) -> Sequence[SharedFile]:
    """Files past expiry, out of downloads, or stuck in the pending state."""
    now = now or datetime.now(UTC)
    conditions = [
        SharedFile.expires_at <= now,
        SharedFile.download_count >= SharedFile.max_downloads,
    ]
    if pending_timeout is not None:
        conditions.append(
            and_(
                SharedFile.status == FileStatus.PENDING,
                SharedFile.uploaded_at <= now - pending_timeout,
            )
        )
    result = await session.execute(select(SharedFile).where(or_(*conditions)))
    return result.scalars().all()
