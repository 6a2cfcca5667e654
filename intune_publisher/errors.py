"""
Exception types raised by the publish pipeline.

Every failure inside a run surfaces to the caller as a single
:class:`PublishError`; the specific exception below is kept as its
``__cause__`` so callers (and the HTTP layer) can still tell a missing
converter from a Graph 400.
"""

from __future__ import annotations

from typing import Iterable, Optional

import requests


class IntunePublisherError(Exception):
    """Base class for everything this package raises on purpose."""


class PreconditionError(IntunePublisherError, FileNotFoundError):
    """A file or folder the run depends on does not exist."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        return self.args[0]


class ConverterError(IntunePublisherError):
    """IntuneWinAppUtil exited with a non-zero code."""

    def __init__(self, exit_code: int, output: str):
        super().__init__(f"IntuneWinAppUtil failed with exit code {exit_code}: {output}")
        self.exit_code = exit_code
        self.output = output


class ContainerFormatError(IntunePublisherError, ValueError):
    """The .intunewin container is not shaped the way we expect."""

    def __init__(self, message: str, found: Optional[Iterable[str]] = None):
        self.found = list(found) if found is not None else []
        if found is not None:
            message = f"{message}. Available: {', '.join(self.found) or '(none)'}"
        super().__init__(message)


class GraphRequestError(IntunePublisherError, requests.HTTPError):
    """A Microsoft Graph call returned a non-success status (or no id)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BlobUploadError(IntunePublisherError):
    """A block PUT or the block-list commit was rejected by Azure Storage."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UnexpectedStateError(IntunePublisherError):
    """Polling saw a state that is neither the success nor the pending value."""

    def __init__(self, stage: str, state: Optional[str]):
        super().__init__(f"Unexpected upload state during {stage}: {state}")
        self.stage = stage
        self.state = state


class PollingTimeoutError(IntunePublisherError, TimeoutError):
    """The poller ran out of attempts before reaching the success state."""

    def __init__(self, stage: str, attempts: int):
        super().__init__(f"Timed out waiting for {stage} after {attempts} attempts")
        self.stage = stage
        self.attempts = attempts


class PublishCancelledError(IntunePublisherError):
    """The caller cancelled the run."""


class PublishError(IntunePublisherError):
    """Uniform wrapper for any failure during a publish run."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Failed to publish application: {cause}")
        self.cause = cause
