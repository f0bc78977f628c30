"""Cancellation and deadline tokens for outbound requests.

A Context is passed to every request and flows through the whole retry loop.
Cancelling it (or letting its deadline pass) aborts a pending backoff sleep
immediately instead of waiting for the delay to run out.
"""

import threading
import time

from .errors import CancellationError

_PRUNE_MIN = 64


class Context:
    """Cooperative cancellation token with an optional monotonic deadline.

    Contexts form a tree: cancelling a parent cancels every child derived
    from it, and a child never outlives its parent's deadline.
    """

    def __init__(self, deadline: float | None = None, parent: "Context | None" = None):
        """Create a context.

        Args:
            deadline: Absolute time.monotonic() value after which the context
                expires. None means no deadline of its own.
            parent: Context this one derives from
        """
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: set[Context] = set()
        self._prune_at = _PRUNE_MIN
        self._cancelled = False

        if parent is not None:
            parent._add_child(self)

    @classmethod
    def background(cls) -> "Context":
        """Return a context that is never cancelled and has no deadline."""
        return cls()

    @classmethod
    def with_cancel(cls, parent: "Context | None" = None) -> "Context":
        return cls(parent=parent)

    @classmethod
    def with_deadline(cls, deadline: float, parent: "Context | None" = None) -> "Context":
        return cls(deadline=deadline, parent=parent)

    @classmethod
    def with_timeout(cls, seconds: float, parent: "Context | None" = None) -> "Context":
        """Derive a context that expires `seconds` from now."""
        return cls(deadline=time.monotonic() + seconds, parent=parent)

    def _add_child(self, child: "Context") -> None:
        with self._lock:
            if not self._cancelled:
                self._children.add(child)
                if len(self._children) >= self._prune_at:
                    # Drop children whose own deadline passed without a cancel
                    self._children = {c for c in self._children if not c.done()}
                    self._prune_at = max(_PRUNE_MIN, 2 * len(self._children))
                return
        child.cancel()

    def _remove_child(self, child: "Context") -> None:
        with self._lock:
            self._children.discard(child)

    def cancel(self) -> None:
        """Cancel this context and all of its children. Idempotent."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            children, self._children = self._children, set()
        self._event.set()
        if self._parent is not None:
            self._parent._remove_child(self)
        for child in children:
            child.cancel()

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        return self.err() is not None

    def err(self) -> CancellationError | None:
        """Return the reason the context is done, or None while it is live."""
        if self._cancelled:
            return CancellationError()
        if self.deadline is not None and time.monotonic() >= self.deadline:
            return CancellationError(deadline_exceeded=True)
        return None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done or `timeout` elapses.

        Returns:
            True if the context is done
        """
        remaining = self.remaining()
        if remaining is not None and (timeout is None or remaining < timeout):
            timeout = remaining
        self._event.wait(timeout)
        return self.done()

    def sleep(self, seconds: float) -> None:
        """Sleep for `seconds` unless the context fires first.

        Raises:
            CancellationError: If the context is done before or during the sleep
        """
        err = self.err()
        if err is None and seconds > 0:
            self.wait(seconds)
            err = self.err()
        if err is not None:
            raise err
