"""
Upload planning.

Decides, per layer, whether a blob is already stored and, if not, how the
client must upload it: one presigned PUT for small blobs, or a multipart
session with one presigned PUT per chunk for large ones.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from .chunks import plan_chunks
from .errors import invalid
from .models import Layer, Requirement
from .settings import Settings
from .storage.base import ObjectStore
from .storage.keys import blob_key
from .throttle import Admission, Unthrottled

__all__ = ["MAX_PARTS", "UploadPolicy", "blob_exists", "check_part_limit", "authorize_upload"]

logger = logging.getLogger(__name__)

# S3 limit on parts per multipart upload
MAX_PARTS = 10000


@dataclass(frozen=True)
class UploadPolicy:
    """
    Upload shape policy.

    Blobs smaller than min_multipart_size get a single-part URL; larger blobs
    are split into chunk_size parts. Every URL is valid for ttl.
    """
    chunk_size: int
    min_multipart_size: int
    ttl: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, settings: Settings) -> UploadPolicy:
        return cls(
            chunk_size=settings.upload_chunk_size,
            min_multipart_size=settings.min_multipart_size,
            ttl=timedelta(seconds=settings.presign_ttl_s),
        )


def check_part_limit(layer: Layer, policy: UploadPolicy) -> None:
    """
    Reject a layer that would need more than MAX_PARTS parts.

    Raises:
        ValidationError: If the layer is too large for the chunk size
    """
    if layer.size < policy.min_multipart_size:
        return
    parts = -(-layer.size // policy.chunk_size)
    if parts > MAX_PARTS:
        raise invalid(
            "manifest.layers",
            layer.digest,
            f"blob of {layer.size} bytes needs {parts} parts of {policy.chunk_size} bytes, "
            f"more than the {MAX_PARTS} part limit",
        )


def blob_exists(store: ObjectStore, digest: str) -> bool:
    """
    Check whether the blob with this digest is already stored.

    Returns False when the store reports the blob missing. Any other store
    failure propagates to the caller.
    """
    return store.exists(blob_key(digest))


def authorize_upload(store: ObjectStore, layer: Layer, policy: UploadPolicy, *,
                     admission: Optional[Admission] = None,
                     deadline: Optional[float] = None) -> List[Requirement]:
    """
    Issue the upload requirements for a missing blob.

    Args:
        store: Object store that signs URLs and owns multipart sessions
        layer: Missing layer with size > 0
        policy: Chunking and URL lifetime policy
        admission: Gate consulted before each requirement is issued
        deadline: time.monotonic() deadline passed to admission

    Returns:
        One requirement for a single-part upload, or one per part (all
        sharing the layer digest) for a multipart upload

    Raises:
        ValidationError: If the blob needs more than MAX_PARTS parts
        StoreError: If opening the session or signing any URL fails
        TransientError: If admission is not granted before the deadline
    """
    admission = admission or Unthrottled()
    key = blob_key(layer.digest)

    if layer.size < policy.min_multipart_size:
        admission.admit(layer.size, deadline)
        url = store.presign_put(key, policy.ttl)
        logger.debug(f"Authorized single-part upload of {layer.digest} ({layer.size} bytes)")
        return [Requirement(digest=layer.digest, offset=0, size=layer.size, url=url)]

    check_part_limit(layer, policy)
    upload_id = store.open_multipart(key)
    requirements = []
    for chunk in plan_chunks(layer.size, policy.chunk_size):
        admission.admit(chunk.size, deadline)
        url = store.presign_multipart_part(key, upload_id, chunk.part_number, policy.ttl)
        requirements.append(Requirement(
            digest=layer.digest,
            offset=chunk.offset,
            size=chunk.size,
            url=url,
        ))

    logger.debug(f"Authorized multipart upload {upload_id} of {layer.digest} "
                 f"({layer.size} bytes, {len(requirements)} parts)")
    return requirements
