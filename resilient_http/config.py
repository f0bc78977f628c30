"""Configuration for the resilient HTTP client.

Durations can be given as seconds, as timedelta objects or as text such as
"500ms" or "1m30s", which is what config files usually contain.
"""

import json
import re
import tomllib
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .utils.logger import get_logger

logger = get_logger(__name__)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# One "<number><unit>" component, e.g. 1.5s or 300ms
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse duration text like "1s", "500ms" or "1h30m" into seconds.

    A bare "0" is accepted. Every other value needs a unit on each component.

    Args:
        text: Duration text, optionally signed

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the text is not a valid duration
    """
    value = text.strip()
    if not value:
        raise ValueError("empty duration")

    sign = 1.0
    if value[0] in "+-":
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]

    if value == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if not match:
            raise ValueError(f"invalid duration: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ValueError(f"invalid duration: {text!r}")
    return sign * total


def _to_seconds(value: Any) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, bool):
        raise ValueError("duration must be a number, timedelta or duration text")
    return float(value)


class ClientConfig(BaseModel):
    """Immutable settings for ResilientHTTPClient.

    A zero dial or read timeout means no explicit timeout: the transport
    falls back to the platform defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Transport
    dial_timeout: float = Field(default=0.0, description="TCP connect timeout in seconds")
    read_timeout: float = Field(default=0.0, description="Overall timeout of one attempt, body included")
    keep_alive: float = Field(default=0.0, description="TCP keep-alive probe interval in seconds")
    pool_connections: int = Field(default=10, ge=1, description="Number of host pools to cache")
    pool_maxsize: int = Field(default=10, ge=1, description="Idle connections kept per host")

    # Retry policy
    retry_count: int = Field(default=0, ge=0, description="Additional attempts after the first")
    backoff_interval: float = Field(default=0.0, description="Delay before the first retry")
    backoff_factor: float = Field(default=1.0, ge=1.0, description="Delay multiplier per retry")
    max_backoff: float = Field(default=0.0, description="Upper bound on one delay, 0 = none")

    # Responses
    raise_for_status: bool = Field(default=False, description="Fail on status >= 400")
    user_agent: str = Field(default="resilient-http/0.1", description="User-Agent header")

    @field_validator(
        "dial_timeout", "read_timeout", "keep_alive", "backoff_interval", "max_backoff",
        mode="before",
    )
    @classmethod
    def validate_duration(cls, v: Any) -> float:
        """Convert duration input to seconds and reject negative values."""
        seconds = _to_seconds(v)
        if seconds < 0:
            raise ValueError(f"duration must not be negative, got: {v}")
        return seconds

    @property
    def connect_timeout(self) -> float | None:
        return self.dial_timeout or None


def load_config(source: "ClientConfig | Mapping[str, Any] | str | Path | None" = None) -> ClientConfig:
    """Build a ClientConfig from a mapping or a JSON/TOML file.

    TOML files may keep the options in an [http] table or at the top level.

    Args:
        source: Existing config, mapping of options, path to a config file,
            or None for the defaults

    Returns:
        Validated ClientConfig

    Raises:
        ConfigurationError: If the file cannot be read or an option is invalid
    """
    if isinstance(source, ClientConfig):
        return source
    if source is None:
        return ClientConfig()

    if isinstance(source, (str, Path)):
        source = _read_config_file(Path(source))

    try:
        return ClientConfig(**dict(source))
    except ValidationError as e:
        raise ConfigurationError(f"invalid client configuration: {e}") from e


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            with open(path) as f:
                data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a table of options")

    section = data.get("http", data)
    logger.debug("loaded_config_file", path=str(path), options=sorted(section))
    return section
