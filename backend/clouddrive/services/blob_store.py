"""S3 object storage client: put, delete and presigned downloads."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from clouddrive.config import Settings
from clouddrive.exceptions import BlobStoreError

logger = logging.getLogger(__name__)


class BlobStore:
    """Thin async wrapper around a boto3 S3 client.

    Built once per process (see ``create_app``) and shared by all requests;
    boto3 clients are thread-safe, so blocking calls are pushed to worker
    threads. No explicit close is needed.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
    ):
        self._client = client
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None

    @classmethod
    def from_settings(cls, settings: Settings) -> BlobStore:
        client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url or None,
            aws_access_key_id=settings.s3_access_key_id or None,
            aws_secret_access_key=settings.s3_secret_access_key or None,
        )
        return cls(
            client,
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url or None,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def location_for(self, key: str) -> str:
        """Public URL of the object (not signed)."""
        if self._endpoint_url:
            return f"{self._endpoint_url}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to store object {key}: {exc}") from exc
        logger.debug("Stored s3://%s/%s (%d bytes)", self._bucket, key, len(data))

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object,
                Bucket=self._bucket,
                Key=key,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to delete object {key}: {exc}") from exc
        logger.debug("Deleted s3://%s/%s", self._bucket, key)

    async def presigned_get_url(self, key: str, expires_in: int) -> str:
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise BlobStoreError(f"Failed to sign URL for {key}: {exc}") from exc
