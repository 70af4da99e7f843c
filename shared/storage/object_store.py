"""
Object Store
============

S3-compatible (MinIO) storage for uploaded label images and generated
reports. Keys are always `{owner_id}/{check_id}/{file_name}` so that access
can be scoped per owner.

The MinIO client is synchronous; calls run in the threadpool.

Version: 0.1.0
"""

import io
import uuid
from datetime import timedelta
from typing import Any

from fastapi.concurrency import run_in_threadpool
from minio import Minio
from minio.error import S3Error

from shared.config import settings
from shared.logging import get_logger


logger = get_logger(__name__)


class StorageError(Exception):
    """Object store operation failed."""


def object_key(owner_id: uuid.UUID | str, check_id: uuid.UUID | str, file_name: str) -> str:
    """Build the owner-scoped key for an object."""
    return f"{owner_id}/{check_id}/{file_name}"


def owns_key(owner_id: uuid.UUID | str, key: str) -> bool:
    """Whether `key` lives under the owner's prefix."""
    return key.startswith(f"{owner_id}/")


class ObjectStore:
    """Thin async wrapper over a MinIO client."""

    def __init__(self, client: Minio | Any | None = None) -> None:
        cfg = settings.storage
        self._client = client or Minio(
            cfg.endpoint,
            access_key=cfg.access_key.get_secret_value(),
            secret_key=cfg.secret_key.get_secret_value(),
            secure=cfg.secure,
            region=cfg.region,
        )
        self.uploads_bucket = cfg.uploads_bucket
        self.reports_bucket = cfg.reports_bucket

    async def ensure_buckets(self) -> None:
        """Create the upload and report buckets if missing."""
        for bucket in (self.uploads_bucket, self.reports_bucket):
            try:
                exists = await run_in_threadpool(self._client.bucket_exists, bucket)
                if not exists:
                    await run_in_threadpool(self._client.make_bucket, bucket)
                    logger.info("storage_bucket_created", bucket=bucket)
            except S3Error as e:
                logger.error("storage_bucket_check_failed", bucket=bucket, error=str(e))
                raise StorageError(f"Could not prepare bucket {bucket}: {e}") from e

    async def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload bytes and return the key."""
        try:
            await run_in_threadpool(
                self._client.put_object,
                bucket,
                key,
                io.BytesIO(data),
                len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error("storage_put_failed", bucket=bucket, key=key, error=str(e))
            raise StorageError(f"Upload failed for {key}: {e}") from e

        logger.debug("storage_object_written", bucket=bucket, key=key, size=len(data))
        return key

    async def get(self, bucket: str, key: str) -> bytes:
        """Download an object."""
        try:
            response = await run_in_threadpool(self._client.get_object, bucket, key)
        except S3Error as e:
            logger.error("storage_get_failed", bucket=bucket, key=key, error=str(e))
            raise StorageError(f"Download failed for {key}: {e}") from e
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def remove(self, bucket: str, key: str) -> None:
        """Delete an object."""
        try:
            await run_in_threadpool(self._client.remove_object, bucket, key)
        except S3Error as e:
            logger.error("storage_remove_failed", bucket=bucket, key=key, error=str(e))
            raise StorageError(f"Delete failed for {key}: {e}") from e

    async def signed_url(self, bucket: str, key: str, expires_in: int = 3600) -> str:
        """Presigned GET URL for an object."""
        try:
            return await run_in_threadpool(
                self._client.presigned_get_object,
                bucket,
                key,
                expires=timedelta(seconds=expires_in),
            )
        except S3Error as e:
            logger.error("storage_sign_failed", bucket=bucket, key=key, error=str(e))
            raise StorageError(f"Could not sign URL for {key}: {e}") from e


_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    """FastAPI dependency returning the process-wide object store."""
    global _store
    if _store is None:
        _store = ObjectStore()
    return _store
