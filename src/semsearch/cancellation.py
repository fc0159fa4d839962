"""
Cooperative cancellation for long-running store queries.
"""

from __future__ import annotations

import threading
import time


class CancellationToken:
    """Thread-safe flag a caller sets to abandon an in-flight query."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class Deadline:
    """Monotonic deadline derived from an optional timeout in seconds."""

    def __init__(self, timeout: float | None) -> None:
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(self._expires_at - time.monotonic(), 0.0)
