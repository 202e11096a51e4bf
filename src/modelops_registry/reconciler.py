"""
Completion reconciliation.

Clients report each successful part upload as a completion record (the URL
they uploaded to and the ETag the store returned). Records are grouped by
multipart upload session and each session is finalized against the store, so
that blobs finished by this call count as present when planning runs.

parse_upload_url is the only code that knows how upload URLs are laid out;
everything after it works on PartLocator values.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from .errors import NoSuchUpload, invalid, missing
from .fanout import run_bounded
from .models import CompletePart
from .storage.base import CompletedPart, ObjectStore
from .storage.keys import is_blob_key

__all__ = ["PartLocator", "UploadSession", "parse_upload_url", "group_sessions", "reconcile"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartLocator:
    """Where an uploaded part belongs: session, part number and storage key."""
    upload_id: str
    part_number: int
    key: str


@dataclass
class UploadSession:
    """Parts reported for one multipart upload, keyed by part number."""
    upload_id: str
    key: str
    parts: Dict[int, str] = field(default_factory=dict)

    def completed_parts(self) -> List[CompletedPart]:
        """Parts in ascending part number order, as the store expects them."""
        return [CompletedPart(part_number=n, etag=self.parts[n]) for n in sorted(self.parts)]


def parse_upload_url(url: str, bucket: str) -> Optional[PartLocator]:
    """
    Recover the multipart location encoded in an upload URL.

    Handles both path-style (https://host/<bucket>/<key>) and virtual-hosted
    (https://<bucket>.host/<key>) URLs.

    Args:
        url: URL from a completion record
        bucket: Bucket the URLs were issued for

    Returns:
        PartLocator, or None if the URL has no uploadId (single-part upload)

    Raises:
        ValidationError: If the URL is malformed, the part number is missing
            or invalid, or the key is outside the blob namespace
    """
    try:
        parts = urlsplit(url)
        query = parse_qs(parts.query)
    except ValueError as e:
        raise invalid("url", url, f"malformed URL: {e}") from e

    upload_id = (query.get("uploadId") or [""])[0]
    if not upload_id:
        return None

    raw_part = (query.get("partNumber") or [""])[0]
    # ASCII digits only; int() would also take "+1", " 1" and "1_0"
    if not (raw_part.isascii() and raw_part.isdigit()) or int(raw_part) < 1:
        raise invalid("partNumber", raw_part, "invalid or missing partNumber")
    part_number = int(raw_part)

    key = unquote(parts.path).lstrip("/")
    if not (parts.hostname or "").startswith(f"{bucket}.") and key.startswith(f"{bucket}/"):
        key = key[len(bucket) + 1:]
    if not is_blob_key(key):
        raise invalid("url", url, "does not address a blob upload")

    return PartLocator(upload_id=upload_id, part_number=part_number, key=key)


def group_sessions(records: Iterable[CompletePart], bucket: str) -> Dict[str, UploadSession]:
    """
    Group completion records by upload session.

    Single-part records are skipped. Grouping does not depend on record order;
    a part reported twice keeps the last ETag.

    Raises:
        ValidationError: If a record is malformed or lacks an ETag, or one
            upload id is reported against different keys
    """
    sessions: Dict[str, UploadSession] = {}
    for record in records:
        locator = parse_upload_url(record.url, bucket)
        if locator is None:
            continue

        if not record.etag:
            raise missing("etag")

        session = sessions.get(locator.upload_id)
        if session is None:
            session = sessions[locator.upload_id] = UploadSession(
                upload_id=locator.upload_id, key=locator.key
            )
        elif session.key != locator.key:
            raise invalid("uploadId", locator.upload_id, "reported for more than one blob")
        session.parts[locator.part_number] = record.etag

    return sessions


def _complete(store: ObjectStore, session: UploadSession) -> str:
    try:
        store.complete_multipart(session.key, session.upload_id, session.completed_parts())
    except NoSuchUpload as e:
        raise invalid("uploadId", session.upload_id, "unknown uploadId") from e
    logger.debug(f"Completed upload {session.upload_id} -> {session.key}")
    return session.upload_id


def reconcile(store: ObjectStore, records: Iterable[CompletePart], *, bucket: str,
              max_workers: int = 8, deadline: Optional[float] = None,
              cancel: Optional[threading.Event] = None) -> List[str]:
    """
    Finalize every multipart session reported in records.

    Returns only after all sessions are complete (or the first failure).

    Args:
        store: Object store owning the sessions
        records: Completion records from the push request
        bucket: Bucket the upload URLs address
        max_workers: Concurrency limit for completion calls
        deadline: time.monotonic() deadline for the whole reconciliation
        cancel: Event set when the caller abandons the request

    Returns:
        Upload ids that were completed

    Raises:
        ValidationError: For malformed records or unknown upload ids
        StoreError: For other store failures
        TransientError: If the deadline passes or cancel is set
    """
    sessions = group_sessions(records, bucket)
    if not sessions:
        return []

    return run_bounded(
        [lambda s=session: _complete(store, s) for session in sessions.values()],
        max_workers=max_workers,
        deadline=deadline,
        cancel=cancel,
    )
