"""Request body encoders keyed by content type."""

import json
from collections.abc import Callable
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel

from .errors import EncodeError

MIME_JSON = "application/json"
MIME_FORM = "application/x-www-form-urlencoded"
MIME_TEXT = "text/plain"
MIME_OCTET = "application/octet-stream"

Encoder = Callable[[Any], bytes]


def _encode_json(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        return body.model_dump_json(by_alias=True).encode("utf-8")
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def _encode_form(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        body = body.model_dump(by_alias=True)
    return urlencode(body, doseq=True).encode("utf-8")


def _encode_text(body: Any) -> bytes:
    return str(body).encode("utf-8")


def _encode_octet(body: Any) -> bytes:
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    raise TypeError(f"expected bytes, got {type(body).__name__}")


_ENCODERS: dict[str, Encoder] = {
    MIME_JSON: _encode_json,
    MIME_FORM: _encode_form,
    MIME_TEXT: _encode_text,
    MIME_OCTET: _encode_octet,
}


def _media_type(content_type: str) -> str:
    """Strip parameters: "application/json; charset=utf-8" -> "application/json"."""
    return content_type.split(";", 1)[0].strip().lower()


def register_encoder(content_type: str, encoder: Encoder) -> None:
    """Register (or replace) the encoder used for a content type."""
    _ENCODERS[_media_type(content_type)] = encoder


def encode_body(content_type: str, body: Any) -> bytes | None:
    """Serialize a request body for the given content type.

    Raw bytes pass through unchanged whatever the content type.

    Args:
        content_type: Value of the Content-Type header
        body: Body to serialize; None means no body

    Returns:
        Encoded body, or None when there is no body

    Raises:
        EncodeError: If the content type is unsupported or the body cannot
            be serialized
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)

    encoder = _ENCODERS.get(_media_type(content_type))
    if encoder is None:
        raise EncodeError(f"no encoder registered for content type {content_type!r}")

    try:
        return encoder(body)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"cannot encode body as {content_type}: {e}") from e
