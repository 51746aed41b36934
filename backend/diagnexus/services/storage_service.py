"""
Object storage adapter backed by AWS S3 (boto3).

boto3 is blocking, so every call runs through ``asyncio.to_thread``.
Uploads and downloads are retried a bounded number of times with a capped
linear backoff; listing, deletes and connection tests are single-shot.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from diagnexus.config import Settings
from diagnexus.exceptions import InternalError, NotFound, ServiceUnavailable

logger = logging.getLogger("diagnexus.storage")

KEY_PREFIX = "medical-reports"
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class EmptyObjectError(Exception):
    pass


@dataclass
class StoredObject:
    data: bytes
    content_type: Optional[str]


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


class StorageService:
    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.aws_s3_bucket
        self.region = settings.aws_region
        self.retries = settings.storage_retries
        self.retry_delay = settings.storage_retry_delay
        self._settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            kwargs = dict(
                region_name=self.region,
                config=BotoConfig(retries={"max_attempts": 3, "mode": "adaptive"}),
            )
            if self._settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = self._settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = self._settings.aws_secret_access_key
            if self._settings.aws_s3_endpoint_url:
                kwargs["endpoint_url"] = self._settings.aws_s3_endpoint_url
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def generate_upload_key(self, user_id: int, filename: str) -> str:
        """medical-reports/user_<id>/<epoch_ms>_<nonce>_<base>.<ext>"""
        timestamp = int(time.time() * 1000)
        sanitized = sanitize_filename(filename or "report")
        base, dot, ext = sanitized.rpartition(".")
        if not dot or not base:
            base, ext = sanitized, "bin"
        nonce = uuid.uuid4().hex[:8]
        return f"{KEY_PREFIX}/user_{user_id}/{timestamp}_{nonce}_{base}.{ext}"

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def _backoff(self, attempt: int):
        delay = min(self.retry_delay * attempt, self.retry_delay * 3)
        if delay > 0:
            await asyncio.sleep(delay)

    async def upload(self, key: str, data: bytes, content_type: str, original_name: str = "") -> str:
        last_error: Optional[Exception] = None
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                logger.info("Uploading %s (%d bytes) attempt %d/%d", key, len(data), attempt, attempts)
                await asyncio.to_thread(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                    ContentLength=len(data),
                    ServerSideEncryption="AES256",
                    Metadata={
                        "original-name": sanitize_filename(original_name),
                        "uploaded-at": datetime.now(timezone.utc).isoformat(),
                    },
                )
                return self.object_url(key)
            except (BotoCoreError, ClientError) as e:
                last_error = e
                logger.warning("Upload of %s failed (attempt %d/%d): %s", key, attempt, attempts, e)
                if attempt < attempts:
                    await self._backoff(attempt)
        raise ServiceUnavailable(f"File upload to storage failed: {last_error}")

    async def download(self, key: str) -> StoredObject:
        last_error: Optional[Exception] = None
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                logger.info("Downloading %s attempt %d/%d", key, attempt, attempts)
                response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
                body = response["Body"]
                data = await asyncio.to_thread(body.read)
                if not data:
                    raise EmptyObjectError("Downloaded file is empty")
                return StoredObject(data=data, content_type=response.get("ContentType"))
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                    raise NotFound(f"File not found in storage: {key}")
                last_error = e
            except (BotoCoreError, EmptyObjectError) as e:
                last_error = e
            logger.warning("Download of %s failed (attempt %d/%d): %s", key, attempt, attempts, last_error)
            if attempt < attempts:
                await self._backoff(attempt)
        if isinstance(last_error, EmptyObjectError):
            raise InternalError(str(last_error))
        raise ServiceUnavailable(f"File download from storage failed: {last_error}")

    async def list_files(self, prefix: Optional[str] = None, max_keys: int = 100) -> list[str]:
        kwargs = {"Bucket": self.bucket, "MaxKeys": max_keys}
        if prefix:
            kwargs["Prefix"] = prefix
        try:
            result = await asyncio.to_thread(self.client.list_objects_v2, **kwargs)
        except (BotoCoreError, ClientError) as e:
            logger.error("Listing %s failed: %s", prefix or "bucket", e)
            raise ServiceUnavailable(f"Storage listing failed: {e}")
        return [obj["Key"] for obj in result.get("Contents", [])]

    async def exists(self, key: str) -> bool:
        return key in await self.list_files(prefix=key)

    async def delete(self, key: str):
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error("Delete of %s failed: %s", key, e)
            raise ServiceUnavailable(f"Storage delete failed: {e}")
        logger.info("Deleted %s", key)

    async def generate_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Presigning %s failed: %s", key, e)
            raise ServiceUnavailable(f"Storage URL signing failed: {e}")

    async def test_connection(self) -> dict:
        try:
            result = await asyncio.to_thread(self.client.list_objects_v2, Bucket=self.bucket, MaxKeys=1)
        except (BotoCoreError, ClientError) as e:
            logger.error("Storage connection test failed: %s", e)
            return {"success": False, "message": f"Storage connection failed: {e}"}
        count = result.get("KeyCount", 0)
        return {
            "success": True,
            "message": f"Storage connected (bucket: {self.bucket}, objects: {count})",
        }
