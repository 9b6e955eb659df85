"""Cooperative cancellation for long-running snapshot, merge and export calls."""

from __future__ import annotations

import threading
import time

from .errors import OperationCancelled


class CancelToken:
    """A cancellation flag with an optional deadline.

    Work checks the token between recursive steps; ``cancel()`` may be called
    from any thread.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self) -> None:
        """Raise OperationCancelled if the token was cancelled or has expired."""
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise OperationCancelled("operation timed out")


def check(cancel: CancelToken | None) -> None:
    """Check an optional token."""
    if cancel is not None:
        cancel.check()
