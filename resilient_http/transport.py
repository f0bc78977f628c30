"""Pooled keep-alive transport built on a requests Session."""

import socket
import time
from typing import Any

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection
from urllib3.exceptions import ProtocolError, ReadTimeoutError, SSLError

from .config import ClientConfig
from .context import Context

_MIN_TIMEOUT = 0.001


def keepalive_socket_options(interval: float) -> list[tuple[int, int, int]]:
    """Socket options enabling TCP keep-alive probes every `interval` seconds.

    Returns an empty list when interval is zero. Options the platform does
    not expose (TCP_KEEPIDLE is Linux only, for example) are skipped.
    """
    if interval <= 0:
        return []

    seconds = max(1, int(round(interval)))
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    if hasattr(socket, "TCP_KEEPIDLE"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, seconds))
    elif hasattr(socket, "TCP_KEEPALIVE"):
        # macOS name for the idle time before the first probe
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, seconds))
    if hasattr(socket, "TCP_KEEPINTVL"):
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, seconds))
    return options


class KeepAliveAdapter(HTTPAdapter):
    """HTTP adapter whose pooled sockets send TCP keep-alive probes.

    urllib3 only applies socket options to new connections, so they are
    passed when the pool manager is created and hold for the adapter's
    lifetime.
    """

    def __init__(self, keep_alive: float = 0.0, **kwargs: Any):
        self.socket_options = HTTPConnection.default_socket_options + keepalive_socket_options(
            keep_alive
        )
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        """Initialize the connection pool with the keep-alive socket options."""
        kwargs["socket_options"] = self.socket_options
        super().init_poolmanager(*args, **kwargs)


def build_session(config: ClientConfig) -> requests.Session:
    """Create the shared session for a client.

    No connection is opened here; sockets are created lazily on first use
    and returned to the pool after each response is read.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": config.user_agent, "Accept": "application/json"})

    adapter = KeepAliveAdapter(
        keep_alive=config.keep_alive,
        pool_connections=config.pool_connections,
        pool_maxsize=config.pool_maxsize,
        max_retries=0,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def attempt_deadline(config: ClientConfig, ctx_deadline: float | None) -> float | None:
    """Monotonic time by which one attempt must finish, or None for no limit.

    read_timeout bounds the whole exchange (connect, headers and body) and
    is measured from the start of the attempt; the context deadline, when
    earlier, wins.
    """
    if config.read_timeout <= 0:
        return ctx_deadline
    deadline = time.monotonic() + config.read_timeout
    return deadline if ctx_deadline is None else min(deadline, ctx_deadline)


def request_timeout(
    config: ClientConfig, remaining: float | None
) -> tuple[float | None, float | None] | None:
    """Compute the (connect, read) timeout for one send.

    The connect timeout is dial_timeout; both are capped by the time left
    before the attempt deadline. Returns None when neither applies so
    requests uses its defaults.
    """
    connect = config.connect_timeout
    if remaining is None:
        return None if connect is None else (connect, None)
    # urllib3 rejects a zero timeout
    remaining = max(remaining, _MIN_TIMEOUT)
    connect = remaining if connect is None else min(connect, remaining)
    return (connect, remaining)


def read_body(
    response: requests.Response,
    deadline: float | None,
    ctx: Context | None = None,
    chunk_size: int = 8192,
) -> bytes:
    """Read a streamed response body, giving up once the deadline passes.

    Each read returns whatever the socket has (read1), so a server that
    trickles bytes cannot hold the request open past the deadline. urllib3
    errors are re-raised as the requests exceptions iter_content would give.

    Raises:
        requests.exceptions.ReadTimeout: If the deadline passes mid-body
        CancellationError: If ctx is cancelled between reads
    """
    chunks = []
    try:
        while True:
            if ctx is not None:
                err = ctx.err()
                if err is not None:
                    raise err
            if deadline is not None and time.monotonic() >= deadline:
                raise requests.exceptions.ReadTimeout(
                    "response body not received before the request timeout",
                    response=response,
                )
            chunk = response.raw.read1(chunk_size, decode_content=True)
            if not chunk:
                break
            chunks.append(chunk)
    except ProtocolError as e:
        raise requests.exceptions.ChunkedEncodingError(e) from e
    except ReadTimeoutError as e:
        raise requests.exceptions.ConnectionError(e) from e
    except SSLError as e:
        raise requests.exceptions.SSLError(e) from e
    except urllib3.exceptions.DecodeError as e:
        raise requests.exceptions.ContentDecodingError(e) from e
    return b"".join(chunks)
