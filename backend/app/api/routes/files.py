"""File sharing endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Request, Response, UploadFile, status

from app.api.deps import CurrentUser, DbSession, Store
from app.core.config import get_settings
from app.core.errors import ValidationFailed
from app.schemas.file import (
    DownloadRequest,
    SharedFileRead,
    UploadResponse,
    UserFilesResponse,
)
from app.services import file_service, sharing_service

router = APIRouter()


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    if ascii_name == filename:
        return f'attachment; filename="{filename}"'
    fallback = ascii_name or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload and encrypt a file",
)
async def upload(
    current_user: CurrentUser,
    session: DbSession,
    store: Store,
    file: Annotated[UploadFile, File()],
    file_name: Annotated[str, Form()],
    expires_at: Annotated[datetime, Form()],
    max_downloads: Annotated[int, Form()],
    password: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    limit = get_settings().max_upload_bytes
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise ValidationFailed(f"File must be at most {limit} bytes", field="file")
    record = await sharing_service.upload_file(
        session,
        store,
        owner=current_user,
        name=file_name,
        mime_type=file.content_type,
        data=data,
        password=password,
        expires_at=expires_at,
        max_downloads=max_downloads,
    )
    return UploadResponse(id=record.id)


@router.post("/download", summary="Download and decrypt a shared file")
async def download(
    payload: DownloadRequest,
    request: Request,
    session: DbSession,
    store: Store,
) -> Response:
    result = await sharing_service.download_file(
        session,
        store,
        file_id=payload.file_id,
        password=payload.password,
        requester_ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return Response(
        content=result.content,
        media_type=result.file.mime_type,
        headers={"Content-Disposition": _content_disposition(result.file.name)},
    )


@router.get(
    "/user-files",
    response_model=UserFilesResponse,
    summary="List files uploaded by the current user",
)
async def user_files(current_user: CurrentUser, session: DbSession) -> UserFilesResponse:
    files = await file_service.list_by_owner(session, current_user.id)
    return UserFilesResponse(
        files=[SharedFileRead.model_validate(item) for item in files]
    )
