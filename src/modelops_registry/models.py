"""
Data models for the push protocol.

These Pydantic models describe the wire documents exchanged with clients:
the manifest a package is made of, the push request and response, and the
completion records clients send back after uploading parts.
"""
from __future__ import annotations

import re
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "Layer",
    "Manifest",
    "CompletePart",
    "PushRequest",
    "Requirement",
    "PushResponse",
]

# Digests are used verbatim in storage keys, so they must not contain separators
_DIGEST_RE = re.compile(r"^sha256[:-][a-f0-9]{64}$")


class Layer(BaseModel):
    """One content-addressed blob referenced by a manifest."""
    model_config = ConfigDict(extra="allow", frozen=True)

    digest: str = Field(..., description="Content digest (sha256:<hex> or sha256-<hex>)")
    size: int = Field(..., ge=0, description="Blob size in bytes")

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, v: str) -> str:
        """Validate digest format."""
        if not _DIGEST_RE.match(v):
            raise ValueError(f"digest must be 'sha256:<64 hex chars>', got '{v}'")
        return v


class Manifest(BaseModel):
    """
    Package manifest.

    Only layers are interpreted; every other field is carried through untouched.
    The stored manifest is always the caller's raw bytes, never this model
    re-serialized.
    """
    model_config = ConfigDict(extra="allow", frozen=True)

    layers: List[Layer] = Field(default_factory=list, description="Blobs making up the package")


class CompletePart(BaseModel):
    """Client report that the upload behind url succeeded with the given ETag."""
    url: str = Field(..., description="URL from the requirement that was uploaded")
    etag: str = Field(default="", description="ETag returned by the store for the PUT")


class PushRequest(BaseModel):
    """
    Decoded push request.

    manifest holds the raw bytes of the embedded manifest document exactly as
    sent; see codec.decode_push_request.
    """
    name: str = Field(..., description="Package reference")
    manifest: bytes = Field(..., description="Raw manifest bytes")
    complete_parts: List[CompletePart] = Field(default_factory=list, alias="completeParts")

    model_config = ConfigDict(populate_by_name=True)


class Requirement(BaseModel):
    """One HTTP PUT the client must perform."""
    model_config = ConfigDict(frozen=True)

    digest: str
    offset: int = 0
    size: int
    url: str


class PushResponse(BaseModel):
    """Outstanding requirements; empty means the manifest was committed."""
    requirements: List[Requirement] = Field(default_factory=list)
