"""
In-memory object store.

This implementation explicitly subclasses ObjectStore to ensure interface changes
break CI immediately, preventing silent drift. Besides serving as the test
double, it backs `modelops-registry serve` with MODELOPS_REGISTRY_STORE=memory for
local development.
"""
from __future__ import annotations

import hashlib
import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Sequence
from urllib.parse import parse_qs, quote, unquote, urlencode, urlsplit

from ...errors import NoSuchUpload, StoreError
from ..base import CompletedPart, ObjectStore

__all__ = ["InMemoryObjectStore"]


@dataclass
class _Upload:
    key: str
    parts: Dict[int, tuple] = field(default_factory=dict)  # part_number -> (etag, data)


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class InMemoryObjectStore(ObjectStore):
    """
    Thread-safe in-memory object store with S3-like multipart semantics.

    This is a test double; not for production use.
    Presigned URLs are path-style (base_url/<key>) and can be exercised with
    upload(), which plays the role of the client's HTTP PUT.
    """

    def __init__(self, bucket: str = "registry", base_url: Optional[str] = None,
                 clock=time.time) -> None:
        self.bucket = bucket
        self.base_url = (base_url or f"http://memory.invalid/{bucket}").rstrip("/")
        self._clock = clock
        self._lock = threading.Lock()
        self._objects: Dict[str, bytes] = {}
        self._uploads: Dict[str, _Upload] = {}
        self.calls: Counter = Counter()

    # ObjectStore protocol

    def exists(self, key: str) -> bool:
        with self._lock:
            self.calls["exists"] += 1
            return key in self._objects

    def put_direct(self, key: str, data: bytes) -> None:
        with self._lock:
            self.calls["put_direct"] += 1
            self._objects[key] = bytes(data)

    def presign_put(self, key: str, ttl: timedelta) -> str:
        with self._lock:
            self.calls["presign_put"] += 1
        return self._url(key, ttl)

    def open_multipart(self, key: str) -> str:
        upload_id = uuid.uuid4().hex
        with self._lock:
            self.calls["open_multipart"] += 1
            self._uploads[upload_id] = _Upload(key=key)
        return upload_id

    def presign_multipart_part(self, key: str, upload_id: str, part_number: int,
                               ttl: timedelta) -> str:
        with self._lock:
            self.calls["presign_multipart_part"] += 1
        return self._url(key, ttl, uploadId=upload_id, partNumber=str(part_number))

    def complete_multipart(self, key: str, upload_id: str,
                           parts: Sequence[CompletedPart]) -> None:
        with self._lock:
            self.calls["complete_multipart"] += 1
            upload = self._uploads.get(upload_id)
            if upload is None or upload.key != key:
                raise NoSuchUpload(upload_id)

            numbers = [p.part_number for p in parts]
            if not numbers:
                raise StoreError(f"MalformedXML: no parts given for upload {upload_id}")
            if numbers != sorted(set(numbers)):
                raise StoreError(f"InvalidPartOrder: parts for upload {upload_id} must be ascending")

            body = bytearray()
            for p in parts:
                recorded = upload.parts.get(p.part_number)
                if recorded is None or recorded[0] != p.etag:
                    raise StoreError(f"InvalidPart: part {p.part_number} of upload {upload_id} not found")
                body += recorded[1]

            self._objects[key] = bytes(body)
            del self._uploads[upload_id]

    # Client-side simulation and inspection helpers

    def upload(self, url: str, data: bytes) -> str:
        """
        Perform the PUT a presigned URL authorizes and return the ETag.

        Raises:
            PermissionError: If the URL has expired or belongs to another bucket
            KeyError: If a part URL refers to an unknown upload
        """
        key, query = self._parse(url)
        if float(query.get("X-Expires", "0")) < self._clock():
            raise PermissionError(f"presigned URL expired: {url}")

        etag = _etag(data)
        upload_id = query.get("uploadId")
        with self._lock:
            if upload_id:
                upload = self._uploads.get(upload_id)
                if upload is None or upload.key != key:
                    raise KeyError(f"NoSuchUpload: {upload_id}")
                upload.parts[int(query["partNumber"])] = (etag, bytes(data))
            else:
                self._objects[key] = bytes(data)
        return etag

    def get(self, key: str) -> bytes:
        """Retrieve object content."""
        with self._lock:
            if key not in self._objects:
                raise KeyError(key)
            return self._objects[key]

    def open_uploads(self) -> Dict[str, str]:
        """Map of open upload id to key."""
        with self._lock:
            return {upload_id: u.key for upload_id, u in self._uploads.items()}

    def clear(self) -> None:
        """Clear all stored data (test utility)."""
        with self._lock:
            self._objects.clear()
            self._uploads.clear()
            self.calls.clear()

    def _url(self, key: str, ttl: timedelta, **params: str) -> str:
        params["X-Expires"] = str(int(self._clock() + ttl.total_seconds()))
        return f"{self.base_url}/{quote(key, safe='/')}?{urlencode(params)}"

    def _parse(self, url: str) -> tuple:
        parts = urlsplit(url)
        prefix = urlsplit(self.base_url).path.rstrip("/") + "/"
        path = unquote(parts.path)
        if not path.startswith(prefix):
            raise PermissionError(f"URL does not address bucket {self.bucket}: {url}")
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}
        return path[len(prefix):], query
