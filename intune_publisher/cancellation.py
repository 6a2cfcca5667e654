"""Cooperative cancellation for a publish run."""

from __future__ import annotations

import threading

from .errors import PublishCancelledError


class CancellationToken:
    """Thread-safe flag checked between phases, blocks and poll attempts."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PublishCancelledError("Publish was cancelled")

    def wait(self, seconds: float) -> None:
        """Sleep for *seconds*, waking early (and raising) if cancelled."""
        if self._event.wait(seconds):
            raise PublishCancelledError("Publish was cancelled")
