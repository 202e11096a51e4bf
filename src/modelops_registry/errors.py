"""
Registry error classes.

Provides a clear taxonomy of errors that can occur while serving a push.
Each error carries the HTTP status and wire code it is reported with, so the
server can render any RegistryError without knowing which component raised it.
"""
from __future__ import annotations

from typing import Optional


class RegistryError(Exception):
    """
    Base class for all registry errors.

    Attributes mirror the error body sent to clients:
    status, code, message, field and value.
    """

    status: int = 400
    code: str = "error"

    def __init__(self, message: str, *, field: Optional[str] = None,
                 value: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        """Render the wire error body, omitting empty fields."""
        body = {"code": self.code, "message": self.message}
        if self.field:
            body["field"] = self.field
        if self.value:
            body["value"] = self.value
        return body


class ValidationError(RegistryError):
    """
    Client input is malformed, incomplete or refers to unknown state.

    Raised when:
    - the package name is not fully qualified
    - the request or manifest cannot be decoded
    - a completion record lacks a part number or ETag
    - a completion record refers to an unknown upload session
    """

    status = 400
    code = "invalid"


class NotFoundError(RegistryError):
    """Unmatched route."""

    status = 404
    code = "not_found"


class TransientError(RegistryError):
    """
    Retryable failure.

    Raised when the store cannot be reached, the push deadline expires or
    admission control cannot grant capacity in time. Clients may retry the
    whole push call.
    """

    status = 503
    code = "unavailable"


class RequestCancelled(TransientError):
    """The request was abandoned by its caller before the push finished."""

    code = "cancelled"


class InternalError(RegistryError):
    """Programming or invariant violation. Details never reach the client."""

    status = 500
    code = "internal"

    def __init__(self, message: str = "internal error"):
        super().__init__(message)


class StoreError(TransientError):
    """
    Object store failure.

    Adapters raise this (chained to the provider exception) for anything that
    is not one of the classified conditions below.
    """

    code = "store_error"


class NoSuchKey(StoreError):
    """Object does not exist in the store."""

    code = "no_such_key"


class NoSuchUpload(StoreError):
    """Multipart upload id is unknown, expired or already completed."""

    code = "no_such_upload"

    def __init__(self, upload_id: str, message: Optional[str] = None):
        super().__init__(message or f"unknown upload id: {upload_id}", value=upload_id)
        self.upload_id = upload_id


def invalid(field: str, value: object, message: str) -> ValidationError:
    """Build a validation error naming the offending field and value."""
    return ValidationError(f"{field}: {message}", field=field, value=str(value))


def missing(field: str) -> ValidationError:
    """Build a validation error for a required field that is absent."""
    return ValidationError(f"{field}: missing", field=field, code="missing")


__all__ = [
    "RegistryError",
    "ValidationError",
    "NotFoundError",
    "TransientError",
    "RequestCancelled",
    "InternalError",
    "StoreError",
    "NoSuchKey",
    "NoSuchUpload",
    "invalid",
    "missing",
]
