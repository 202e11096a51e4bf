"""
S3 object store adapter.

Implements the ObjectStore protocol on boto3 for AWS S3 and S3-compatible
services (MinIO, Ceph RGW). Provider exceptions are translated into the
registry error taxonomy at this boundary.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import NoSuchUpload, StoreError
from ..settings import Settings
from .base import CompletedPart, ObjectStore

__all__ = ["S3ObjectStore"]

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3ObjectStore(ObjectStore):
    """
    ObjectStore adapter for S3-compatible storage.

    Uses path-style addressing so custom endpoints such as a local MinIO work
    without wildcard DNS. The boto3 client is created once and shared; boto3
    clients are safe to use from multiple threads.
    """

    def __init__(self, *, settings: Settings, client: Optional[Any] = None) -> None:
        """
        Initialize S3 adapter with settings.

        Args:
            settings: Settings containing bucket and S3 connection configuration
            client: Pre-built boto3 S3 client (tests inject a mock here)
        """
        self._settings = settings
        self.bucket = settings.bucket

        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=settings.s3_access_key,
                aws_secret_access_key=settings.s3_secret_key,
                region_name=settings.s3_region,
            )
            client = session.client(
                "s3",
                endpoint_url=settings.s3_endpoint,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                    retries={"max_attempts": 5, "mode": "standard"},
                ),
            )
            if settings.s3_endpoint:
                logger.debug(f"S3 adapter using custom endpoint: {settings.s3_endpoint}")
            else:
                logger.debug("S3 adapter using default AWS endpoint")
        self._client = client

        logger.debug(f"S3 adapter bucket: {self.bucket}, region: {settings.s3_region or 'default'}")

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise StoreError(f"S3 head_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"S3 head_object failed for {key}: {e}") from e
        return True

    def put_direct(self, key: str, data: bytes) -> None:
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 put_object failed for {key}: {e}") from e

    def presign_put(self, key: str, ttl: timedelta) -> str:
        try:
            return self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl.total_seconds()),
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 presign failed for {key}: {e}") from e

    def open_multipart(self, key: str) -> str:
        try:
            response = self._client.create_multipart_upload(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 create_multipart_upload failed for {key}: {e}") from e
        upload_id = response["UploadId"]
        logger.debug(f"Opened multipart upload {upload_id} for {key}")
        return upload_id

    def presign_multipart_part(self, key: str, upload_id: str, part_number: int,
                               ttl: timedelta) -> str:
        try:
            return self._client.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=int(ttl.total_seconds()),
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 presign failed for {key} part {part_number}: {e}") from e

    def complete_multipart(self, key: str, upload_id: str,
                           parts: Sequence[CompletedPart]) -> None:
        try:
            self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in parts]
                },
            )
        except ClientError as e:
            if _error_code(e) == "NoSuchUpload":
                raise NoSuchUpload(upload_id) from e
            raise StoreError(f"S3 complete_multipart_upload failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"S3 complete_multipart_upload failed for {key}: {e}") from e
        logger.debug(f"Completed multipart upload {upload_id} for {key} ({len(parts)} parts)")
