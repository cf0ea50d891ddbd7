"""MinIO / S3-compatible media store.

The minio client is synchronous; every call runs in a worker thread via
``asyncio.to_thread`` so the event loop is never blocked on the network.
"""

from __future__ import annotations

import asyncio
import io

import structlog
from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error

from relay.config import MinioMediaConfig
from relay.storage.base import MediaStore, StoredObject

logger = structlog.get_logger()

_MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject"}


def create_minio_client(config: MinioMediaConfig) -> Minio:
    """Create a MinIO client from configuration."""
    return Minio(
        config.endpoint,
        access_key=config.access_key,
        secret_key=config.secret_key,
        secure=config.secure,
    )


class MinioMediaStore(MediaStore):
    """Media store backed by a MinIO (or any S3-compatible) bucket."""

    def __init__(self, config: MinioMediaConfig, client: Minio | None = None) -> None:
        self._bucket = config.bucket
        self._client = client or create_minio_client(config)
        self._log = logger.bind(media_store="minio", bucket=self._bucket)

    def _ensure_bucket(self) -> None:
        if not self._client.bucket_exists(bucket_name=self._bucket):
            self._client.make_bucket(bucket_name=self._bucket)
            self._log.info("media.minio.bucket_created")
        else:
            self._log.info("media.minio.bucket_exists")

    async def startup(self) -> None:
        try:
            await asyncio.to_thread(self._ensure_bucket)
        except S3Error as e:
            self._log.error("media.minio.bucket_error", error=str(e))
            raise

    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        await asyncio.to_thread(
            self._client.put_object,
            bucket_name=self._bucket,
            object_name=key,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def _get_sync(self, key: str) -> StoredObject | None:
        try:
            response = self._client.get_object(bucket_name=self._bucket, object_name=key)
        except S3Error as e:
            if e.code in _MISSING_OBJECT_CODES:
                return None
            raise

        try:
            data = response.read()
            content_type = response.headers.get("Content-Type") or "application/octet-stream"
        finally:
            response.close()
            response.release_conn()

        return StoredObject(key=key, data=data, content_type=content_type)

    async def get(self, key: str) -> StoredObject | None:
        return await asyncio.to_thread(self._get_sync, key)

    def _list_sync(self, prefix: str) -> list[str]:
        objects = self._client.list_objects(
            bucket_name=self._bucket,
            prefix=prefix,
            recursive=True,
        )
        return sorted(obj.object_name for obj in objects)

    async def list_keys(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def _delete_sync(self, keys: list[str]) -> None:
        # remove_objects is lazy; errors only surface while iterating
        errors = list(
            self._client.remove_objects(
                bucket_name=self._bucket,
                delete_object_list=[DeleteObject(key) for key in keys],
            )
        )
        if errors:
            raise RuntimeError(
                "Failed to delete objects: "
                + ", ".join(f"{err.name}: {err.message}" for err in errors)
            )

    async def delete(self, keys: list[str]) -> None:
        if not keys:
            return
        await asyncio.to_thread(self._delete_sync, keys)
