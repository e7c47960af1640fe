"""Object storage backends for encrypted file blobs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.errors import StorageError, StorageObjectNotFound

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStore(Protocol):
    """put/get/delete over opaque handles."""

    def put_object(
        self, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str: ...

    def get_object(self, handle: str) -> bytes: ...

    def delete_object(self, handle: str) -> None: ...


def _normalise_key(key: str) -> str:
    normalised = key.strip().lstrip("/")
    if not normalised:
        raise StorageError("Storage object key cannot be empty")
    if any(part in {"", ".", ".."} for part in normalised.split("/")):
        raise StorageError(f"Storage object key {key!r} is not allowed")
    return normalised


class LocalObjectStore:
    """File-system backed store for tests and local development."""

    def __init__(self, bucket: str, *, root: Path | None = None) -> None:
        if not bucket:
            raise StorageError("Storage bucket is not configured")
        self.bucket = bucket
        self._root = (root or Path.cwd() / ".storage") / bucket
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self._root / _normalise_key(key)

    def put_object(
        self, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Unable to write {key}: {exc}") from exc
        return _normalise_key(key)

    def get_object(self, handle: str) -> bytes:
        path = self._path_for(handle)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageObjectNotFound(handle) from exc
        except OSError as exc:
            raise StorageError(f"Unable to read {handle}: {exc}") from exc

    def delete_object(self, handle: str) -> None:
        path = self._path_for(handle)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise StorageObjectNotFound(handle) from exc
        except OSError as exc:
            raise StorageError(f"Unable to delete {handle}: {exc}") from exc

    def exists(self, handle: str) -> bool:
        return self._path_for(handle).is_file()


class S3ObjectStore:
    """boto3-backed store for S3 compatible services."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not bucket:
            raise StorageError("S3 bucket is not configured")
        self.bucket = bucket
        if client is None:
            client_kwargs: dict[str, Any] = {
                "region_name": region,
                "config": Config(
                    region_name=region,
                    signature_version="s3v4",
                    s3={"addressing_style": "virtual"},
                ),
            }
            if access_key_id and secret_access_key:
                client_kwargs["aws_access_key_id"] = access_key_id.strip()
                client_kwargs["aws_secret_access_key"] = secret_access_key.strip()
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url.strip()
            client = boto3.client("s3", **client_kwargs)
        self._client = client

    def put_object(
        self, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str:
        normalised = _normalise_key(key)
        try:
            self._client.put_object(
                Bucket=self.bucket, Key=normalised, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to upload {normalised}: {exc}") from exc
        return normalised

    def get_object(self, handle: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=handle)
            return response["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                raise StorageObjectNotFound(handle) from exc
            raise StorageError(f"Unable to fetch {handle}: {code}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to fetch {handle}: {exc}") from exc

    def delete_object(self, handle: str) -> None:
        try:
            self._client.head_object(Bucket=self.bucket, Key=handle)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                raise StorageObjectNotFound(handle) from exc
            raise StorageError(f"Unable to inspect {handle}: {code}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to inspect {handle}: {exc}") from exc
        try:
            self._client.delete_object(Bucket=self.bucket, Key=handle)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to delete {handle}: {exc}") from exc


def build_object_store(**overrides: Any) -> ObjectStore:
    """Factory that honours application settings."""

    from app.core.config import get_settings

    settings = get_settings()
    backend = overrides.get("backend") or settings.storage_backend
    bucket = overrides.get("bucket") or settings.s3_bucket
    if backend == "s3":
        logger.info("Using S3 object store bucket=%s", bucket)
        return S3ObjectStore(
            bucket,
            region=settings.s3_region,
            endpoint_url=overrides.get("endpoint_url") or settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    root = overrides.get("root") or (
        Path(settings.storage_root) if settings.storage_root else None
    )
    logger.info("Using local object store bucket=%s", bucket)
    return LocalObjectStore(bucket, root=root)
