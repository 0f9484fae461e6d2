"""Photo blob storage on S3 (or MinIO through a custom endpoint)."""

import asyncio
import logging
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> str: ...

    async def delete(self, key: str) -> None: ...


class StorageError(RuntimeError):
    """Upload or delete against the object store failed."""


class S3BlobStore:
    """boto3 client calls run in a worker thread so the event loop never blocks."""

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key_id: str = "",
        secret_access_key: str = "",
        public_base_url: str | None = None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self._client.put_object, Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {key} to {self.bucket}: {e}")
            raise StorageError(f"Upload failed for {key}") from e
        return self.url_for(key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete {key} from {self.bucket}: {e}")
            raise StorageError(f"Delete failed for {key}") from e


_blob_store: S3BlobStore | None = None


def get_blob_store() -> BlobStore:
    """Get or create the global blob store."""
    global _blob_store
    if _blob_store is None:
        _blob_store = S3BlobStore(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            public_base_url=settings.public_media_base_url,
        )
    return _blob_store
