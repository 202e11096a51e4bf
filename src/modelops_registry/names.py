"""
Package reference parsing.

A package reference names the target of a push:

    host/namespace/name:tag[+build]

Parsing is lenient (missing components are left empty) and completeness is a
separate check, so callers can report exactly which component is missing.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

__all__ = ["PackageReference", "parse_reference"]

_PART_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,79}$")
_HOST_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]{0,253}(?::[0-9]{1,5})?$")


@dataclass(frozen=True)
class PackageReference:
    """
    Structured package reference.

    Empty strings denote absent components. A reference is complete when host,
    namespace, name and tag are all present and well formed; build is optional.
    """
    host: str = ""
    namespace: str = ""
    name: str = ""
    tag: str = ""
    build: str = ""

    def is_complete(self) -> bool:
        """True if every required component is present and valid."""
        return self.incomplete_reason() is None

    def incomplete_reason(self) -> Optional[str]:
        """Describe the first missing or malformed component, or None if complete."""
        if not self.host:
            return "missing host"
        if not _HOST_RE.match(self.host):
            return f"invalid host {self.host!r}"
        for label, value in (("namespace", self.namespace), ("name", self.name), ("tag", self.tag)):
            if not value:
                return f"missing {label}"
            if not _PART_RE.match(value):
                return f"invalid {label} {value!r}"
        if self.build and not _PART_RE.match(self.build):
            return f"invalid build {self.build!r}"
        return None

    def parts(self) -> List[str]:
        """Path components used to address the stored manifest."""
        parts = [self.host, self.namespace, self.name, self.tag]
        if self.build:
            parts.append(self.build)
        return parts

    def __str__(self) -> str:
        text = "/".join(p for p in (self.host, self.namespace, self.name) if p)
        if self.tag:
            text += f":{self.tag}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse_reference(s: str) -> PackageReference:
    """
    Parse a package reference string.

    Args:
        s: Reference such as "registry.example.com/library/mistral:7b+Q4_0"

    Returns:
        PackageReference with any absent components left empty

    Examples:
        >>> parse_reference("example.com/library/model:latest")
        PackageReference(host='example.com', namespace='library', name='model', tag='latest', build='')

        >>> parse_reference("model").is_complete()
        False
    """
    s = (s or "").strip()

    build = ""
    if "+" in s:
        s, build = s.rsplit("+", 1)

    # The tag separator is the last ':' after the last '/', so host ports survive
    tag = ""
    slash = s.rfind("/")
    colon = s.rfind(":")
    if colon > slash:
        s, tag = s[:colon], s[colon + 1:]

    segments = s.split("/") if s else []
    name = segments.pop() if segments else ""
    namespace = segments.pop() if segments else ""
    host = "/".join(segments)

    return PackageReference(host=host, namespace=namespace, name=name, tag=tag, build=build)
