from __future__ import annotations

import io
from typing import Any, BinaryIO, Iterator, Tuple

from minio import Minio
from minio.error import S3Error

from slenpaste.core.settings import StorageSettings
from slenpaste.providers.storage import StorageProvider

_MISSING_CODES = ("NoSuchKey", "NoSuchObject")
# Streams of unknown length are uploaded as multipart with this part size.
_PART_SIZE = 10 * 1024 * 1024


def _strip_http(endpoint: str) -> str:
    # Minio client expects "host:port" (no scheme)
    endpoint = (endpoint or "").strip()
    endpoint = endpoint.replace("http://", "").replace("https://", "")
    endpoint = endpoint.rstrip("/")
    return endpoint


class MinioStorageProvider(StorageProvider):
    """
    MinIO-backed implementation of StorageProvider.

    Env expected:
      - MINIO_ENDPOINT (e.g. http://minio:9000)
      - MINIO_BUCKET   (e.g. slenpaste)
      - MINIO_ACCESS_KEY
      - MINIO_SECRET_KEY

    The bucket is created on startup if missing.
    """

    name = "minio"

    def __init__(self, bucket: str, client: Any) -> None:
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "MinioStorageProvider":
        host = _strip_http(settings.minio_endpoint)
        if not host:
            raise RuntimeError("MINIO_ENDPOINT is empty or invalid")
        if not settings.minio_access_key or not settings.minio_secret_key:
            raise RuntimeError("MINIO_ACCESS_KEY / MINIO_SECRET_KEY not set")

        client = Minio(
            endpoint=host,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_endpoint.lower().startswith("https://"),
        )

        try:
            if not client.bucket_exists(bucket_name=settings.minio_bucket):
                client.make_bucket(bucket_name=settings.minio_bucket)
        except Exception as e:
            raise RuntimeError(f"MinIO bucket init failed (bucket={settings.minio_bucket}): {e}") from e

        return cls(bucket=settings.minio_bucket, client=client)

    def put_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._client.put_object(
            bucket_name=self.bucket,
            object_name=key.lstrip("/"),
            data=stream,
            length=-1,
            part_size=_PART_SIZE,
            content_type=content_type or "application/octet-stream",
        )

    def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._client.put_object(
            bucket_name=self.bucket,
            object_name=key.lstrip("/"),
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type or "application/octet-stream",
        )

    def _open(self, key: str):
        try:
            return self._client.get_object(bucket_name=self.bucket, object_name=key.lstrip("/"))
        except S3Error as e:
            # Not found should raise FileNotFoundError to match local provider behavior
            if getattr(e, "code", "") in _MISSING_CODES:
                raise FileNotFoundError(key) from e
            raise

    def get_object(self, key: str) -> bytes:
        resp = self._open(key)
        try:
            return resp.read()
        finally:
            resp.close()
            resp.release_conn()

    def open_stream(self, key: str, chunk_size: int = 64 * 1024) -> Tuple[Iterator[bytes], int]:
        resp = self._open(key)
        length = int(resp.headers.get("Content-Length") or 0)

        def _chunks() -> Iterator[bytes]:
            try:
                for chunk in resp.stream(chunk_size):
                    yield chunk
            finally:
                resp.close()
                resp.release_conn()

        return _chunks(), length

    def exists(self, key: str) -> bool:
        try:
            self._client.stat_object(bucket_name=self.bucket, object_name=key.lstrip("/"))
            return True
        except S3Error as e:
            if getattr(e, "code", "") in _MISSING_CODES:
                return False
            raise

    def delete_object(self, key: str) -> None:
        try:
            self._client.remove_object(bucket_name=self.bucket, object_name=key.lstrip("/"))
        except S3Error as e:
            if getattr(e, "code", "") in _MISSING_CODES:
                return
            raise
