"""Object storage access for source videos and rendered clips (MinIO / S3)."""

from __future__ import annotations

from mimetypes import guess_type
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import structlog
from minio import Minio
from minio.error import S3Error

logger = structlog.get_logger(__name__)


class StorageConfigurationError(RuntimeError):
    """Raised when storage configuration is invalid."""


class ObjectStorage(Protocol):
    def download_to_path(self, bucket: str, object_key: str, destination: Path | str) -> Path: ...

    def upload_file(
        self,
        bucket: str,
        object_key: str,
        file_path: Path | str,
        *,
        content_type: str | None = None,
        cache_control: str | None = None,
    ) -> None: ...


class MinioStorageService:
    """Lightweight wrapper around MinIO for the worker's download/upload needs."""

    def __init__(self, *, client: Minio) -> None:
        self._client = client
        self._known_buckets: set[str] = set()

    def ensure_bucket(self, bucket: str) -> None:
        """Idempotently create the bucket if it does not yet exist."""

        if bucket in self._known_buckets:
            return
        try:
            if not self._client.bucket_exists(bucket_name=bucket):
                self._client.make_bucket(bucket_name=bucket)
        except S3Error as exc:  # pragma: no cover - network side effect
            raise StorageConfigurationError(f"Unable to ensure bucket '{bucket}': {exc}") from exc
        self._known_buckets.add(bucket)

    def download_to_path(self, bucket: str, object_key: str, destination: Path | str) -> Path:
        """Download an object to a local path and return the resulting file path."""

        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("storage.download", bucket=bucket, object_key=object_key)
        self._client.fget_object(bucket_name=bucket, object_name=object_key, file_path=str(target))
        return target

    def upload_file(
        self,
        bucket: str,
        object_key: str,
        file_path: Path | str,
        *,
        content_type: str | None = None,
        cache_control: str | None = None,
    ) -> None:
        """Upload a local file, overwriting any object left by an earlier attempt."""

        path = Path(file_path)
        if content_type is None:
            content_type = guess_type(path.name)[0] or "application/octet-stream"
        metadata = {"Cache-Control": f"max-age={cache_control}"} if cache_control else None
        self.ensure_bucket(bucket)
        logger.info("storage.upload", bucket=bucket, object_key=object_key, content_type=content_type)
        self._client.fput_object(
            bucket_name=bucket,
            object_name=object_key,
            file_path=str(path),
            content_type=content_type,
            metadata=metadata,
        )


def build_storage_service(settings) -> MinioStorageService:
    """Instantiate a storage service from worker settings."""

    if not all([settings.s3_endpoint_url, settings.s3_access_key, settings.s3_secret_key]):
        raise StorageConfigurationError("S3/MinIO environment variables are not fully set")

    parsed = urlparse(str(settings.s3_endpoint_url))
    secure = settings.s3_secure if settings.s3_secure is not None else parsed.scheme == "https"
    client = Minio(
        endpoint=parsed.netloc or parsed.path,
        access_key=settings.s3_access_key,
        secret_key=settings.s3_secret_key,
        secure=secure,
        region=settings.s3_region,
    )
    return MinioStorageService(client=client)
