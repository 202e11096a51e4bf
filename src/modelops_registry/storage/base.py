"""
Storage interfaces for ModelOps Registry.

This protocol defines the boundary between the push engine and object store
implementations. All multipart session state lives behind it, which is what
lets any server replica handle any round of a multi-round push.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol, Sequence, runtime_checkable

__all__ = ["CompletedPart", "ObjectStore"]


@dataclass(frozen=True, slots=True)
class CompletedPart:
    """Part number and the ETag the store returned when the part was written."""
    part_number: int
    etag: str


@runtime_checkable
class ObjectStore(Protocol):
    """
    Object store operations consumed by the push engine.

    Implementations must be safe to share across threads.
    """

    def exists(self, key: str) -> bool:
        """
        Check whether an object exists without fetching it.

        Returns:
            True if the object exists, False if the store reports it missing

        Raises:
            StoreError: For any failure other than "not found"
        """
        ...

    def put_direct(self, key: str, data: bytes) -> None:
        """
        Write a small object synchronously.

        Raises:
            StoreError: If the write fails
        """
        ...

    def presign_put(self, key: str, ttl: timedelta) -> str:
        """
        Authorize a single-request upload of key.

        Returns:
            URL accepting one PUT of the whole object until ttl elapses

        Raises:
            StoreError: If signing fails
        """
        ...

    def open_multipart(self, key: str) -> str:
        """
        Start a multipart upload session for key.

        Returns:
            Upload id identifying the session

        Raises:
            StoreError: If the session cannot be created
        """
        ...

    def presign_multipart_part(self, key: str, upload_id: str, part_number: int,
                               ttl: timedelta) -> str:
        """
        Authorize the upload of one part of a multipart session.

        The returned URL carries uploadId and partNumber query parameters.

        Raises:
            StoreError: If signing fails
        """
        ...

    def complete_multipart(self, key: str, upload_id: str,
                           parts: Sequence[CompletedPart]) -> None:
        """
        Finalize a multipart session, making the object visible at key.

        The store is authoritative on part ordering and integrity.

        Raises:
            NoSuchUpload: If upload_id is unknown, expired or already completed
            StoreError: For other failures (e.g. invalid or missing parts)
        """
        ...
