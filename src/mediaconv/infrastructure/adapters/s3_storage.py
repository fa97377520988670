"""S3Storage — S3-compatible StoragePort with streamed multipart uploads."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

from mediaconv.domain.errors import StorageError
from mediaconv.domain.ports import ByteSource

if TYPE_CHECKING:
    from mediaconv.domain.ports import StoragePort

logger = logging.getLogger(__name__)

PART_SIZE: int = 10 * 1024 * 1024
DEFAULT_MAX_ATTEMPTS: int = 3


class S3Storage:
    """Store objects in an S3 bucket (AWS, MinIO, or compatible).

    The boto3 client is created lazily with path-style addressing and
    botocore's ``standard`` retry mode, which retries throttling, timeouts,
    and 5xx responses with exponential backoff. Blocking calls run in a
    worker thread.

    Satisfies the StoragePort protocol.
    """

    if TYPE_CHECKING:
        _protocol_check: StoragePort

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        part_size: int = PART_SIZE,
        client: Any | None = None,
    ) -> None:
        if not bucket:
            raise StorageError("bucket must not be empty")
        self._bucket = bucket
        self._endpoint_url = endpoint_url or None
        self._region = region or None
        self._access_key = access_key or None
        self._secret_key = secret_key or None
        self._max_attempts = max_attempts
        self._part_size = part_size
        self._client = client

    @property
    def bucket(self) -> str:
        return self._bucket

    def _get_client(self) -> Any:
        """Get or create the S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            self._client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url,
                region_name=self._region,
                aws_access_key_id=self._access_key,
                aws_secret_access_key=self._secret_key,
                config=BotoConfig(
                    s3={"addressing_style": "path"},
                    retries={"max_attempts": self._max_attempts, "mode": "standard"},
                ),
            )
        return self._client

    async def upload_stream(self, key: str, source: ByteSource) -> int:
        """Upload ``source`` under ``key`` and return the number of bytes sent.

        Bodies that fit in one part go up with a single ``put_object``; larger
        ones as a multipart upload that is aborted on any failure.
        """
        client = self._get_client()
        started = time.monotonic()
        first = await _read_part(source, self._part_size)

        try:
            if len(first) < self._part_size:
                await asyncio.to_thread(client.put_object, Bucket=self._bucket, Key=key, Body=first)
                total = len(first)
            else:
                total = await self._multipart_upload(client, key, first, source)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload s3://{self._bucket}/{key}: {exc}") from exc

        logger.info("Uploaded to S3: %s (%d bytes, %.0fms)", key, total, (time.monotonic() - started) * 1000)
        return total

    async def _multipart_upload(self, client: Any, key: str, first: bytes, source: ByteSource) -> int:
        created = await asyncio.to_thread(client.create_multipart_upload, Bucket=self._bucket, Key=key)
        upload_id = created["UploadId"]
        parts: list[dict[str, Any]] = []
        total = 0
        chunk = first
        try:
            while chunk:
                number = len(parts) + 1
                response = await asyncio.to_thread(
                    client.upload_part,
                    Bucket=self._bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=number,
                    Body=chunk,
                )
                parts.append({"ETag": response["ETag"], "PartNumber": number})
                total += len(chunk)
                chunk = await _read_part(source, self._part_size)

            await asyncio.to_thread(
                client.complete_multipart_upload,
                Bucket=self._bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            logger.warning("Aborting multipart upload of %s after %d parts", key, len(parts))
            try:
                await asyncio.to_thread(client.abort_multipart_upload, Bucket=self._bucket, Key=key, UploadId=upload_id)
            except Exception:
                logger.exception("Failed to abort multipart upload %s", upload_id)
            raise
        return total

    async def download(self, key: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(self._get_client().download_file, self._bucket, key, str(destination))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download s3://{self._bucket}/{key}: {exc}") from exc
        return destination

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._get_client().delete_object, Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete s3://{self._bucket}/{key}: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._get_client().head_object, Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to check s3://{self._bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to check s3://{self._bucket}/{key}: {exc}") from exc
        return True


async def _read_part(source: ByteSource, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads until EOF."""
    buffer = bytearray()
    while len(buffer) < size:
        chunk = await source.read(size - len(buffer))
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)
