"""HTTP client with automatic retry logic.

One ResilientHTTPClient is created at startup and shared by every thread
that talks to remote services. Requests go through a pooled keep-alive
session; transport failures are retried with a backoff delay between
attempts until the retry budget runs out or the caller's context fires.
"""

import json
import threading
import time
from typing import Any

import requests
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from .config import ClientConfig, load_config
from .context import Context
from .encoding import encode_body
from .errors import (
    ClientError,
    ConfigurationError,
    DecodeError,
    StatusError,
    TransportError,
)
from .transport import attempt_deadline, build_session, read_body, request_timeout
from .utils.logger import get_logger

# Transient failures; everything else from requests is a caller mistake
_TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


class ResilientHTTPClient:
    """HTTP client with automatic retry logic for transient failures.

    Features:
    - Connection pooling with TCP keep-alive probes
    - Connect timeout plus an overall per-attempt timeout covering the body,
      both capped by the request context
    - Retries on connection errors and timeouts, never on bad responses
    - Constant or exponential backoff, interruptible by cancellation
    - JSON responses decoded, optionally validated into a pydantic type

    The retry count can be changed after construction with
    set_retry_count(). The new value applies to requests started after the
    call; a request already retrying keeps the budget it started with.
    """

    def __init__(
        self,
        config: ClientConfig | dict[str, Any] | None = None,
        *,
        logger: Any = None,
    ):
        """Initialize the HTTP client.

        Args:
            config: Client configuration, or a mapping of its options
            logger: Leveled logger for request diagnostics (structlog style:
                event name plus keyword context). Defaults to this module's
                structlog logger.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = load_config(config)
        self.logger = logger if logger is not None else get_logger(__name__)
        self.session = build_session(self.config)
        self._retry_lock = threading.Lock()
        self._retry_count = self.config.retry_count

    @property
    def retry_count(self) -> int:
        with self._retry_lock:
            return self._retry_count

    def set_retry_count(self, n: int) -> None:
        """Override the number of retries after the first failed attempt."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise ConfigurationError(f"retry count must be a non-negative integer, got: {n!r}")
        with self._retry_lock:
            self._retry_count = n

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        *,
        ctx: Context | None = None,
        model: Any = None,
    ) -> Any:
        """Fetch a URL and decode its JSON body, retrying transient failures.

        Args:
            url: The URL to fetch
            headers: Extra request headers
            ctx: Cancellation/deadline context (defaults to background)
            model: Optional type (pydantic model, list[Model], ...) to
                validate the decoded body into

        Returns:
            Decoded JSON body, or an instance of `model`

        Raises:
            TransportError: If every attempt failed to reach the server
            CancellationError: If ctx was cancelled or expired
            DecodeError: If the body is not valid JSON or does not fit `model`
        """
        return self._execute("GET", url, headers, None, ctx, model)

    def post(
        self,
        url: str,
        content_type: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
        *,
        ctx: Context | None = None,
        model: Any = None,
    ) -> Any:
        """Send a body and decode the JSON response, retrying transient failures.

        The body is serialized once, before the first attempt, and the same
        bytes are sent on every retry.

        Raises:
            EncodeError: If the body cannot be encoded for content_type
            TransportError, CancellationError, DecodeError: as for get()
        """
        try:
            data = encode_body(content_type, body)
        except ClientError as e:
            e.method, e.url = "POST", url
            self._log_failure(e)
            raise
        merged = dict(headers or {})
        merged["Content-Type"] = content_type
        return self._execute("POST", url, merged, data, ctx, model)

    def _wait_strategy(self) -> Any:
        if self.config.backoff_interval <= 0:
            return wait_none()
        kwargs: dict[str, float] = {
            "multiplier": self.config.backoff_interval,
            "exp_base": self.config.backoff_factor,
        }
        if self.config.max_backoff > 0:
            kwargs["max"] = self.config.max_backoff
        return wait_exponential(**kwargs)

    def _execute(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        data: bytes | None,
        ctx: Context | None,
        model: Any,
    ) -> Any:
        ctx = ctx if ctx is not None else Context.background()
        retries = self.retry_count
        start = time.monotonic()
        attempts = 0

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            self.logger.warning(
                "http_retry",
                method=method,
                url=url,
                attempt=retry_state.attempt_number,
                max_attempts=retries + 1,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else 0.0,
                error=str(exc),
            )

        retrying = Retrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(retries + 1),
            wait=self._wait_strategy(),
            sleep=ctx.sleep,
            before_sleep=log_retry,
            reraise=True,
        )

        try:
            for attempt in retrying:
                with attempt:
                    err = ctx.err()
                    if err is not None:
                        raise err
                    attempts += 1
                    response, body = self._send(ctx, method, url, headers, data, attempts)
            return self._decode(response, body, model)
        except ClientError as e:
            e.method = method
            e.url = url
            e.attempts = attempts
            e.elapsed = time.monotonic() - start
            self._log_failure(e)
            raise

    def _log_failure(self, e: ClientError) -> None:
        self.logger.error(
            "http_request_failed",
            method=e.method,
            url=e.url,
            attempts=e.attempts,
            elapsed_seconds=round(e.elapsed, 3),
            error_type=type(e).__name__,
            error=str(e),
        )

    def _send(
        self,
        ctx: Context,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        data: bytes | None,
        attempt: int,
    ) -> tuple[requests.Response, bytes]:
        """Make a single HTTP request and read its body, raising appropriate exceptions."""
        deadline = attempt_deadline(self.config, ctx.deadline)
        remaining = None if deadline is None else deadline - time.monotonic()
        timeout = request_timeout(self.config, remaining)
        self.logger.debug("http_request", method=method, url=url, attempt=attempt)

        try:
            response = self.session.request(
                method, url, headers=headers, data=data, timeout=timeout, stream=True
            )
            try:
                body = read_body(response, deadline, ctx)
            except Exception:
                response.close()
                raise
        except _TRANSIENT_ERRORS as e:
            # A timeout shortened by the context deadline is the context's failure
            err = ctx.err()
            if err is not None:
                raise err from e
            raise TransportError(f"{method} {url} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ClientError(f"{method} {url} failed: {e}") from e

        err = ctx.err()
        if err is not None:
            raise err

        self.logger.debug(
            "http_response",
            method=method,
            url=url,
            status_code=response.status_code,
            content_length=len(body),
        )

        if self.config.raise_for_status and response.status_code >= 400:
            raise StatusError(
                f"Server returned {response.status_code}",
                status_code=response.status_code,
            )
        return response, body

    def _decode(self, response: requests.Response, body: bytes, model: Any) -> Any:
        """Decode a JSON body; json.loads detects a UTF-8 BOM on bytes input."""
        if not body:
            data = None
        else:
            try:
                data = json.loads(body)
            except ValueError as e:
                raise DecodeError(
                    f"response body is not valid JSON: {e}",
                    status_code=response.status_code,
                ) from e

        if model is None:
            return data
        try:
            return TypeAdapter(model).validate_python(data)
        except ValidationError as e:
            raise DecodeError(
                f"response body does not match {getattr(model, '__name__', model)}: {e}",
                status_code=response.status_code,
            ) from e

    def close(self) -> None:
        """Close the underlying session and its pooled connections."""
        self.session.close()

    def __enter__(self) -> "ResilientHTTPClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def new_client(logger: Any = None, **options: Any) -> ResilientHTTPClient:
    """Create a client from keyword options, e.g. new_client(retry_count=2)."""
    return ResilientHTTPClient(options, logger=logger)
