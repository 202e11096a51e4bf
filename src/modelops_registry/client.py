"""
Registry HTTP client for the push protocol.

Drives a push to completion: submit the manifest, upload every requirement
the server returns straight to the object store, report the ETags back, and
repeat until the server commits the manifest.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import NotFoundError, RegistryError, TransientError, ValidationError
from .models import CompletePart, PushResponse, Requirement
from .settings import Settings

__all__ = ["RegistryClient", "PushResult", "RangeReader", "directory_reader"]

logger = logging.getLogger(__name__)

JSON = "application/json"

# (digest, offset, size) -> bytes
RangeReader = Callable[[str, int, int], bytes]


@dataclass(frozen=True)
class PushResult:
    """Outcome of a completed push."""
    name: str
    rounds: int
    uploads: int
    bytes_uploaded: int


def directory_reader(root: str | Path) -> RangeReader:
    """
    Read blob ranges from files in a directory.

    A blob is looked up as root/<digest>, falling back to root/<digest with ':'
    replaced by '-'> for filesystems that do not allow ':' in names.
    """
    root = Path(root)

    def read(digest: str, offset: int, size: int) -> bytes:
        path = root / digest
        if not path.exists():
            path = root / digest.replace(":", "-")
        with open(path, "rb") as f:
            f.seek(offset)
            data = f.read(size)
        if len(data) != size:
            raise ValueError(f"Blob {digest} is shorter than expected: wanted {size} bytes at {offset}, got {len(data)}")
        return data

    return read


def _error_from_response(response: httpx.Response) -> RegistryError:
    """Rebuild the registry error described by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    message = body.get("message") or f"registry returned HTTP {response.status_code}"
    kwargs = {"field": body.get("field"), "value": body.get("value"), "code": body.get("code")}

    if response.status_code == 404:
        return NotFoundError(message, **kwargs)
    if response.status_code >= 500:
        return TransientError(message, **kwargs)
    error = ValidationError(message, **kwargs)
    error.status = response.status_code
    return error


class RegistryClient:
    """
    HTTP client for a ModelOps registry.

    Registry calls and object store uploads use separate httpx clients: upload
    URLs are presigned and must not carry registry headers.
    """

    def __init__(self, base_url: str, *, timeout: float = 30.0, retries: int = 3,
                 http: Optional[httpx.Client] = None,
                 upload_http: Optional[httpx.Client] = None,
                 wait=None):
        """
        Initialize registry client.

        Args:
            base_url: Registry URL (e.g., "http://localhost:8080")
            timeout: Request timeout in seconds
            retries: Attempts for retryable failures (transport errors, 5xx)
            http: Client for registry API calls (created if None)
            upload_http: Client for presigned uploads (created if None)
            wait: tenacity wait strategy between attempts
        """
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=10)
        self.http = http or httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
            headers={"User-Agent": "modelops-registry/0.1.0"},
        )
        self.upload_http = upload_http or httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0))

    @classmethod
    def from_settings(cls, base_url: str, settings: Settings) -> RegistryClient:
        return cls(base_url, timeout=settings.http_timeout_s, retries=settings.http_retry)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retries),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TransportError, TransientError)),
            reraise=True,
        )

    def push_round(self, name: str, manifest: bytes,
                   complete_parts: Sequence[CompletePart] = ()) -> PushResponse:
        """
        Send one push request.

        The manifest bytes are embedded verbatim so the server stores exactly
        what the caller supplied.

        Raises:
            ValidationError: If the registry rejects the request
            TransientError: If the registry stays unavailable after retries
        """
        parts = [{"url": p.url, "etag": p.etag} for p in complete_parts]
        body = b"".join([
            b'{"name":', json.dumps(name).encode("utf-8"),
            b',"manifest":', manifest,
            b',"completeParts":', json.dumps(parts).encode("utf-8"),
            b"}",
        ])

        for attempt in self._retrying():
            with attempt:
                response = self.http.post("/v1/push", content=body, headers={"Content-Type": JSON})
                if response.status_code >= 400:
                    raise _error_from_response(response)
                return PushResponse.model_validate_json(response.content)

    def upload(self, requirement: Requirement, data: bytes) -> str:
        """
        PUT one requirement's bytes to its presigned URL.

        Returns:
            ETag reported by the store

        Raises:
            httpx.HTTPStatusError: If the store rejects the upload
        """
        if len(data) != requirement.size:
            raise ValueError(f"Upload of {requirement.digest} at {requirement.offset}: "
                             f"expected {requirement.size} bytes, got {len(data)}")

        for attempt in self._retrying():
            with attempt:
                response = self.upload_http.put(requirement.url, content=data)
                if response.status_code >= 500:
                    raise TransientError(f"store returned HTTP {response.status_code} for upload")
                response.raise_for_status()
                return response.headers.get("ETag", "")

    def push(self, name: str, manifest: bytes, read: RangeReader, *,
             max_rounds: int = 4) -> PushResult:
        """
        Push a package, uploading whatever the registry asks for.

        Args:
            name: Fully qualified package reference
            manifest: Raw manifest bytes
            read: Callable returning the bytes of a blob range
            max_rounds: Give up if the registry still wants uploads after this many rounds

        Returns:
            PushResult once the registry has committed the manifest

        Raises:
            RegistryError: If the registry rejects the push
            RuntimeError: If the push does not converge within max_rounds
        """
        complete_parts: List[CompletePart] = []
        uploads = 0
        uploaded = 0
        for round_number in range(1, max_rounds + 1):
            response = self.push_round(name, manifest, complete_parts)
            if not response.requirements:
                logger.info(f"Pushed {name} in {round_number} round(s), {uploads} uploads")
                return PushResult(name=name, rounds=round_number, uploads=uploads, bytes_uploaded=uploaded)

            logger.debug(f"Round {round_number}: {len(response.requirements)} uploads requested")
            complete_parts = []
            for requirement in response.requirements:
                data = read(requirement.digest, requirement.offset, requirement.size)
                etag = self.upload(requirement, data)
                complete_parts.append(CompletePart(url=requirement.url, etag=etag))
                uploads += 1
                uploaded += requirement.size

        raise RuntimeError(f"Push of {name} did not complete after {max_rounds} rounds")

    def close(self):
        """Close HTTP clients."""
        self.http.close()
        self.upload_http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
