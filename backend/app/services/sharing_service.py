"""Upload and download flows tying encryption, storage and file records together."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.core.errors import (
    DecryptionFailed,
    IncorrectFilePassword,
    QuotaExceeded,
    StorageError,
    ValidationFailed,
)
from app.integrations import ObjectStore
from app.models.shared_file import FileStatus, SharedFile
from app.models.user import User
from app.security.encryption import decrypt_bytes, encrypt_bytes
from app.security.redact import mask_ip
from app.services import file_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadResult:
    file: SharedFile
    content: bytes


def _storage_key(owner_id: uuid.UUID, file_id: uuid.UUID) -> str:
    return f"files/{owner_id}/{file_id.hex}"


def _effective_password(password: str | None) -> str:
    if password:
        return password
    return get_settings().default_file_password


async def upload_file(
    session: AsyncSession,
    store: ObjectStore,
    *,
    owner: User,
    name: str,
    mime_type: str | None,
    data: bytes,
    password: str | None,
    expires_at: datetime,
    max_downloads: int,
) -> SharedFile:
    """Validate, encrypt, record (pending), store, then confirm an upload."""
    settings = get_settings()
    name = name.strip()
    if not name:
        raise ValidationFailed("Name cannot be empty", field="file_name")
    if not data:
        raise ValidationFailed("File cannot be empty", field="file")
    if len(data) > settings.max_upload_bytes:
        raise ValidationFailed(
            f"File must be at most {settings.max_upload_bytes} bytes", field="file"
        )
    file_service.validate_limits(max_downloads=max_downloads, expires_at=expires_at)

    blob = await run_in_threadpool(encrypt_bytes, data, _effective_password(password))

    file_id = uuid.uuid4()
    handle = _storage_key(owner.id, file_id)
    record = await file_service.create_file(
        session,
        owner_id=owner.id,
        name=name,
        mime_type=mime_type or "application/octet-stream",
        size=len(data),
        max_downloads=max_downloads,
        expires_at=expires_at,
        storage_handle=handle,
        is_password_protected=bool(password),
        status=FileStatus.PENDING,
        file_id=file_id,
    )

    try:
        stored_handle = await run_in_threadpool(
            store.put_object, handle, blob, content_type="application/octet-stream"
        )
    except StorageError:
        logger.exception("Storage write failed for file %s", file_id)
        await file_service.discard_file(session, record)
        raise
    if stored_handle != handle:
        record.storage_handle = stored_handle

    record = await file_service.activate_file(session, record)
    logger.info(
        "Stored file %s for user %s (%d bytes, %d downloads)",
        record.id,
        owner.id,
        record.size_bytes,
        record.max_downloads,
    )
    return record


async def download_file(
    session: AsyncSession,
    store: ObjectStore,
    *,
    file_id: str,
    password: str | None,
    requester_ip: str | None,
    user_agent: str | None,
    now: datetime | None = None,
) -> DownloadResult:
    """Authorize, fetch, decrypt, and only then count the download."""
    now = now or datetime.now(UTC)
    shared_file = await file_service.authorize_download(session, file_id, now=now)

    blob = await run_in_threadpool(store.get_object, shared_file.storage_handle)
    try:
        content = await run_in_threadpool(
            decrypt_bytes, blob, _effective_password(password)
        )
    except DecryptionFailed as exc:
        raise IncorrectFilePassword(shared_file.id) from exc

    served_id = shared_file.id
    try:
        shared_file = await file_service.record_download(
            session,
            shared_file,
            requester_ip=requester_ip,
            user_agent=user_agent,
            now=now,
        )
    except QuotaExceeded:
        logger.warning("Download of %s lost the quota race", served_id)
        raise

    logger.info(
        "Served file %s to %s (%d/%d)",
        shared_file.id,
        mask_ip(requester_ip),
        shared_file.download_count,
        shared_file.max_downloads,
    )
    return DownloadResult(file=shared_file, content=content)
