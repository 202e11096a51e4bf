"""
Settings and configuration for ModelOps Registry.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at server or client construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

__all__ = ["Settings", "create_settings_from_env", "MIB"]

MIB = 1024 * 1024

DEFAULT_UPLOAD_CHUNK_SIZE = 50 * MIB
# S3 rejects multipart parts (other than the last) below 5 MiB
DEFAULT_MIN_MULTIPART_SIZE = 5 * MIB


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the registry server and client.

    Object Store Settings:
        bucket: Bucket holding blobs and manifests (required)
        store: Store backend ("s3" or "memory")
        s3_endpoint: Custom S3 endpoint URL (MinIO, private clouds)
        s3_region: S3 region name
        s3_access_key: Access key id
        s3_secret_key: Secret access key

    Push Settings:
        upload_chunk_size: Bytes per multipart part
        min_multipart_size: Blobs at or above this size use multipart uploads
        presign_ttl_s: Validity window of issued upload URLs
        max_workers: Bound on concurrent store calls per push
        push_timeout_s: Deadline for a single push call
        transfer_rate: Global admission rate in bytes/s (None = unthrottled)

    Client Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Attempts for retryable requests (1 = no retry)
    """
    bucket: str
    store: str = "s3"
    s3_endpoint: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None

    upload_chunk_size: int = DEFAULT_UPLOAD_CHUNK_SIZE
    min_multipart_size: int = DEFAULT_MIN_MULTIPART_SIZE
    presign_ttl_s: float = 15 * 60.0
    max_workers: int = 8
    push_timeout_s: float = 60.0
    transfer_rate: Optional[int] = None

    http_timeout_s: float = 30.0
    http_retry: int = 3

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.bucket:
            raise ValueError("bucket is required")

        # S3 bucket naming rules (also accepted by MinIO)
        if not re.match(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$", self.bucket):
            raise ValueError(f"Invalid bucket name: {self.bucket}")

        if self.store not in ("s3", "memory"):
            raise ValueError(f"Unknown store backend: {self.store}. Supported values: s3, memory")

        if self.s3_endpoint and not re.match(r"^https?://[^\s/]+", self.s3_endpoint):
            raise ValueError(f"Invalid s3_endpoint format: {self.s3_endpoint}")

        if bool(self.s3_access_key) != bool(self.s3_secret_key):
            raise ValueError("s3_access_key and s3_secret_key must be specified together")

        if self.upload_chunk_size <= 0:
            raise ValueError(f"upload_chunk_size must be positive, got {self.upload_chunk_size}")

        if self.min_multipart_size <= 0:
            raise ValueError(f"min_multipart_size must be positive, got {self.min_multipart_size}")

        # Every part but the last must meet the provider floor
        if self.upload_chunk_size < self.min_multipart_size:
            raise ValueError(
                f"upload_chunk_size ({self.upload_chunk_size}) must be at least "
                f"min_multipart_size ({self.min_multipart_size})"
            )

        if self.presign_ttl_s <= 0:
            raise ValueError(f"presign_ttl_s must be positive, got {self.presign_ttl_s}")

        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

        if self.push_timeout_s <= 0:
            raise ValueError(f"push_timeout_s must be positive, got {self.push_timeout_s}")

        if self.transfer_rate is not None and self.transfer_rate <= 0:
            raise ValueError(f"transfer_rate must be positive, got {self.transfer_rate}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 1:
            raise ValueError(f"http_retry must be at least 1, got {self.http_retry}")


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        Object store:
        - MODELOPS_REGISTRY_BUCKET (required)
        - MODELOPS_REGISTRY_STORE (default: s3)
        - MODELOPS_REGISTRY_S3_ENDPOINT (optional, for MinIO/custom endpoints)
        - MODELOPS_REGISTRY_S3_REGION (optional)
        - MODELOPS_REGISTRY_S3_ACCESS_KEY (optional)
        - MODELOPS_REGISTRY_S3_SECRET_KEY (optional)

        Push:
        - MODELOPS_REGISTRY_UPLOAD_CHUNK_SIZE (default: 52428800)
        - MODELOPS_REGISTRY_MIN_MULTIPART_SIZE (default: 5242880)
        - MODELOPS_REGISTRY_PRESIGN_TTL (default: 900)
        - MODELOPS_REGISTRY_MAX_WORKERS (default: 8)
        - MODELOPS_REGISTRY_PUSH_TIMEOUT (default: 60.0)
        - MODELOPS_REGISTRY_TRANSFER_RATE (optional, bytes per second)

        Client:
        - MODELOPS_REGISTRY_HTTP_TIMEOUT (default: 30.0)
        - MODELOPS_REGISTRY_HTTP_RETRY (default: 3)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: Optional[int]) -> Optional[int]:
        value = os.getenv(key)
        return int(value) if value else default

    bucket = os.getenv("MODELOPS_REGISTRY_BUCKET")
    if not bucket:
        raise ValueError("MODELOPS_REGISTRY_BUCKET environment variable is required")

    return Settings(
        bucket=bucket,
        store=os.getenv("MODELOPS_REGISTRY_STORE", "s3").lower(),
        s3_endpoint=os.getenv("MODELOPS_REGISTRY_S3_ENDPOINT"),
        s3_region=os.getenv("MODELOPS_REGISTRY_S3_REGION"),
        s3_access_key=os.getenv("MODELOPS_REGISTRY_S3_ACCESS_KEY"),
        s3_secret_key=os.getenv("MODELOPS_REGISTRY_S3_SECRET_KEY"),
        upload_chunk_size=get_int("MODELOPS_REGISTRY_UPLOAD_CHUNK_SIZE", DEFAULT_UPLOAD_CHUNK_SIZE),
        min_multipart_size=get_int("MODELOPS_REGISTRY_MIN_MULTIPART_SIZE", DEFAULT_MIN_MULTIPART_SIZE),
        presign_ttl_s=get_float("MODELOPS_REGISTRY_PRESIGN_TTL", 15 * 60.0),
        max_workers=get_int("MODELOPS_REGISTRY_MAX_WORKERS", 8),
        push_timeout_s=get_float("MODELOPS_REGISTRY_PUSH_TIMEOUT", 60.0),
        transfer_rate=get_int("MODELOPS_REGISTRY_TRANSFER_RATE", None),
        http_timeout_s=get_float("MODELOPS_REGISTRY_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("MODELOPS_REGISTRY_HTTP_RETRY", 3),
    )
