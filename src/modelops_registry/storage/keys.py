"""
Storage key construction helpers.

Centralizes the layout of the bucket:

    blobs/<digest>
    manifests/<host>/<namespace>/<name>/<tag>[/<build>]
"""
from __future__ import annotations

import posixpath

from ..names import PackageReference

BLOBS_PREFIX = "blobs"
MANIFESTS_PREFIX = "manifests"


def blob_key(digest: str) -> str:
    """
    Build the canonical key of a blob.

    Examples:
        >>> blob_key("sha256:abc")
        'blobs/sha256:abc'
    """
    if not digest:
        raise ValueError("digest cannot be empty")
    return posixpath.join(BLOBS_PREFIX, digest)


def manifest_key(ref: PackageReference) -> str:
    """
    Build the key a package's manifest is committed to.

    Raises:
        ValueError: If the reference is not complete
    """
    reason = ref.incomplete_reason()
    if reason:
        raise ValueError(f"cannot address manifest for {ref}: {reason}")
    return posixpath.join(MANIFESTS_PREFIX, *ref.parts())


def is_blob_key(key: str) -> bool:
    """True if key addresses an object in the blob namespace."""
    head, sep, tail = key.partition("/")
    return head == BLOBS_PREFIX and bool(sep) and bool(tail) and "/" not in tail


__all__ = ["BLOBS_PREFIX", "MANIFESTS_PREFIX", "blob_key", "manifest_key", "is_blob_key"]
