"""Resilient HTTP client: pooled keep-alive transport with retry and backoff."""

from .client import ResilientHTTPClient, new_client
from .config import ClientConfig, load_config, parse_duration
from .context import Context
from .encoding import MIME_FORM, MIME_JSON, MIME_OCTET, MIME_TEXT, register_encoder
from .errors import (
    CancellationError,
    ClientError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    StatusError,
    TransportError,
)

__all__ = [
    "CancellationError",
    "ClientConfig",
    "ClientError",
    "ConfigurationError",
    "Context",
    "DecodeError",
    "EncodeError",
    "MIME_FORM",
    "MIME_JSON",
    "MIME_OCTET",
    "MIME_TEXT",
    "ResilientHTTPClient",
    "StatusError",
    "TransportError",
    "load_config",
    "new_client",
    "parse_duration",
    "register_encoder",
]
