"""Cooperative cancellation shared by the runner, the cache and the downloader.

A single token is threaded through a whole download run. Work checks it
between units (task dispatch, streamed chunks) rather than being interrupted.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from fhircache.core.exceptions import CancelledError


class CancellationToken:
    """Thread-safe cancellation token.

    Tokens can be linked: a child token is cancelled whenever its parent is,
    but cancelling the child leaves the parent untouched. The TaskRunner uses
    this to cancel one run on first error without cancelling the caller.

    Example:
        >>> token = CancellationToken()
        >>> token.cancelled
        False
        >>> token.cancel()
        >>> token.cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and run registered callbacks once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback that has not run yet. Unknown callbacks are ignored."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        """Raise CancelledError if cancellation has been requested."""
        if self._event.is_set():
            raise CancelledError()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout elapses; return cancelled state."""
        return self._event.wait(timeout)

    def child(self) -> CancellationToken:
        """Create a token that is cancelled along with this one.

        Pass ``child.cancel`` to remove_callback() to detach it again.
        """
        token = CancellationToken()
        self.add_callback(token.cancel)
        return token

    def cancel_after(self, seconds: float) -> threading.Timer:
        """Schedule cancellation after a delay.

        Returns:
            The started timer; cancel it to disarm the deadline.
        """
        timer = threading.Timer(seconds, self.cancel)
        timer.daemon = True
        timer.start()
        return timer
