"""Exception hierarchy for the resilient HTTP client.

Every error raised by a request carries enough context for a caller to log
it: the method, the target URL, how many sends were performed and how long
the call took.
"""


class ClientError(Exception):
    """Base exception for all client errors."""

    def __init__(
        self,
        message: str,
        method: str | None = None,
        url: str | None = None,
        attempts: int = 0,
        elapsed: float = 0.0,
    ):
        self.method = method
        self.url = url
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(message)


class ConfigurationError(ClientError, ValueError):
    """Invalid client configuration (negative duration, bad retry count, ...)."""

    pass


class TransportError(ClientError):
    """Connection refused, DNS failure, timeout or reset. Retryable."""

    pass


class CancellationError(ClientError):
    """The request context was cancelled or its deadline passed."""

    def __init__(self, message: str | None = None, deadline_exceeded: bool = False, **kwargs):
        self.deadline_exceeded = deadline_exceeded
        if message is None:
            message = "context deadline exceeded" if deadline_exceeded else "context canceled"
        super().__init__(message, **kwargs)


class DecodeError(ClientError):
    """A response arrived but its body is not the expected JSON shape."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class EncodeError(ClientError):
    """The request body cannot be serialized for the given content type."""

    pass


class StatusError(ClientError):
    """Server answered with an error status and raise_for_status is enabled."""

    def __init__(self, message: str, status_code: int, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)
