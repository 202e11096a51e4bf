"""
JSON wire codec for the push protocol.

Decoding failures are client errors and surface as ValidationError naming
the offending field. The embedded manifest is extracted as the exact bytes
the caller sent so that it can be stored without re-serialization.
"""
from __future__ import annotations

import json
import re
from typing import Dict, List, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import RegistryError, invalid, missing
from .models import CompletePart, Manifest, PushRequest, PushResponse

__all__ = [
    "decode_push_request",
    "decode_manifest",
    "encode_push_response",
    "encode_error",
    "raw_members",
]

M = TypeVar("M", bound=BaseModel)


class _Envelope(BaseModel):
    """Push request members other than the manifest."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    complete_parts: List[CompletePart] = Field(default_factory=list, alias="completeParts")


_decoder = json.JSONDecoder()
_WS = re.compile(r"[ \t\n\r]*")


def raw_members(text: str) -> Dict[str, str]:
    """
    Split a JSON object into its members without decoding the values.

    Args:
        text: JSON document whose top level is an object

    Returns:
        Mapping of member name to the exact source text of its value

    Raises:
        ValueError: If text is not a single well-formed JSON object
    """
    idx = _WS.match(text, 0).end()
    if text[idx:idx + 1] != "{":
        raise ValueError("expected a JSON object")
    idx = _WS.match(text, idx + 1).end()

    members: Dict[str, str] = {}
    if text[idx:idx + 1] == "}":
        idx += 1
    else:
        while True:
            if text[idx:idx + 1] != '"':
                raise ValueError(f"expected member name at offset {idx}")
            key, idx = _decoder.raw_decode(text, idx)
            idx = _WS.match(text, idx).end()
            if text[idx:idx + 1] != ":":
                raise ValueError(f"expected ':' at offset {idx}")
            idx = _WS.match(text, idx + 1).end()
            start = idx
            _, idx = _decoder.raw_decode(text, idx)
            members[key] = text[start:idx]
            idx = _WS.match(text, idx).end()
            sep = text[idx:idx + 1]
            idx += 1
            if sep == "}":
                break
            if sep != ",":
                raise ValueError(f"expected ',' or '}}' at offset {idx - 1}")
            idx = _WS.match(text, idx).end()

    if _WS.match(text, idx).end() != len(text):
        raise ValueError(f"unexpected data after object at offset {idx}")
    return members


def _decode_user_json(field: str, data: bytes, model: Type[M]) -> M:
    """Validate a JSON document against model, mapping failures to ValidationError."""
    try:
        return model.model_validate_json(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        name = f"{field}.{loc}" if field and loc else (field or loc or "body")
        if first.get("type") == "missing":
            raise missing(name) from e
        raise invalid(name, first.get("input", ""), first.get("msg", "invalid")) from e


def decode_push_request(body: bytes) -> PushRequest:
    """
    Decode a push request body.

    Args:
        body: Request body, a JSON object with name, manifest and completeParts

    Returns:
        PushRequest whose manifest holds the raw manifest bytes

    Raises:
        ValidationError: If the body is not valid JSON or required fields are
            missing or malformed
    """
    try:
        text = body.decode("utf-8")
        members = raw_members(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise invalid("body", "", f"malformed JSON: {e}") from e
    except RecursionError as e:
        raise invalid("body", "", "malformed JSON: nesting too deep") from e

    raw_manifest = members.get("manifest")
    if raw_manifest is None or raw_manifest == "null":
        raise missing("manifest")
    if not raw_manifest.startswith("{"):
        raise invalid("manifest", raw_manifest[:64], "must be a JSON object")

    name = members.get("name")
    if name is None:
        raise missing("name")
    parts = members.get("completeParts", "null")
    if parts == "null":
        parts = "[]"

    # Re-assemble without the manifest so it is validated and kept as raw bytes
    envelope = f'{{"name":{name},"completeParts":{parts}}}'
    request = _decode_user_json("", envelope.encode("utf-8"), _Envelope)
    return PushRequest(
        name=request.name,
        manifest=raw_manifest.encode("utf-8"),
        complete_parts=request.complete_parts,
    )


def decode_manifest(raw: bytes) -> Manifest:
    """
    Decode manifest bytes.

    Raises:
        ValidationError: If the manifest is malformed (field prefixed "manifest")
    """
    return _decode_user_json("manifest", raw, Manifest)


def encode_push_response(response: PushResponse) -> bytes:
    """Encode a push response."""
    return response.model_dump_json().encode("utf-8")


def encode_error(error: RegistryError) -> bytes:
    """Encode an error body."""
    return json.dumps(error.to_dict(), separators=(",", ":")).encode("utf-8")
