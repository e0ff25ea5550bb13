from __future__ import annotations

from typing import Any, BinaryIO, Iterator, Optional, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from slenpaste.core.settings import StorageSettings
from slenpaste.providers.storage import StorageProvider

_MISSING_CODES = ("NoSuchKey", "NotFound", "404")


def _is_missing(exc: ClientError) -> bool:
    code = str((exc.response or {}).get("Error", {}).get("Code", ""))
    return code in _MISSING_CODES


class S3StorageProvider(StorageProvider):
    """
    Native AWS S3 StorageProvider.

    Uses boto3 credential resolution (env, profile, IRSA); no access keys
    are read by this class.

    Required env:
      - S3_BUCKET

    Optional env:
      - S3_PREFIX (e.g. "pastes/" or "")
      - AWS_REGION or AWS_DEFAULT_REGION
    """

    name = "s3"

    def __init__(self, bucket: str, prefix: str = "", region: Optional[str] = None, client: Any = None):
        bucket = (bucket or "").strip()
        if not bucket:
            raise RuntimeError("S3_BUCKET is required for S3 storage provider")

        prefix = (prefix or "").strip()
        if prefix and not prefix.endswith("/"):
            prefix = prefix + "/"

        self.bucket = bucket
        self.prefix = prefix

        if client is None:
            cfg = Config(
                retries={"max_attempts": 8, "mode": "standard"},
                region_name=(region or None),
            )
            client = boto3.client("s3", config=cfg)
        self.s3 = client

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "S3StorageProvider":
        return cls(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region=settings.s3_region or None,
        )

    def _key(self, key: str) -> str:
        key = (key or "").lstrip("/")
        if self.prefix:
            return f"{self.prefix}{key}"
        return key

    def put_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = "application/octet-stream",
    ) -> None:
        self.s3.upload_fileobj(
            stream,
            self.bucket,
            self._key(key),
            ExtraArgs={"ContentType": content_type or "application/octet-stream"},
        )

    def put_object(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self.s3.put_object(
            Bucket=self.bucket,
            Key=self._key(key),
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def get_object(self, key: str) -> bytes:
        try:
            resp = self.s3.get_object(Bucket=self.bucket, Key=self._key(key))
        except ClientError as e:
            if _is_missing(e):
                raise FileNotFoundError(key) from e
            raise
        body = resp["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def open_stream(self, key: str, chunk_size: int = 64 * 1024) -> Tuple[Iterator[bytes], int]:
        try:
            resp = self.s3.get_object(Bucket=self.bucket, Key=self._key(key))
        except ClientError as e:
            if _is_missing(e):
                raise FileNotFoundError(key) from e
            raise
        body = resp["Body"]

        def _chunks() -> Iterator[bytes]:
            try:
                for chunk in body.iter_chunks(chunk_size=chunk_size):
                    if chunk:
                        yield chunk
            finally:
                body.close()

        return _chunks(), int(resp.get("ContentLength") or 0)

    def exists(self, key: str) -> bool:
        try:
            self.s3.head_object(Bucket=self.bucket, Key=self._key(key))
            return True
        except ClientError as e:
            if _is_missing(e):
                return False
            raise

    def delete_object(self, key: str) -> None:
        # S3 DeleteObject succeeds for absent keys.
        self.s3.delete_object(Bucket=self.bucket, Key=self._key(key))
