"""
Polling helper for Intune content-file states.

Intune reports progress on a content file through its ``uploadState``
field: ``<stage>Pending`` while work is in flight, ``<stage>Success`` when
done, and anything else (``...Failed``, ``...TimedOut``) on failure.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..cancellation import CancellationToken
from ..errors import PollingTimeoutError, UnexpectedStateError

logger = logging.getLogger(__name__)

STORAGE_URI_STAGE = "AzureStorageUriRequest"
COMMIT_FILE_STAGE = "CommitFile"


def success_state(stage: str) -> str:
    return f"{stage}Success"


def pending_state(stage: str) -> str:
    return f"{stage}Pending"


def poll_until(
    fetch_status: Callable[[], Dict[str, Any]],
    success_value: str,
    pending_value: str,
    *,
    stage: str,
    max_attempts: int,
    delay: float,
    status_field: str = "uploadState",
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """
    Call *fetch_status* until its *status_field* equals *success_value*.

    Parameters
    ----------
    fetch_status : callable
        Returns the current resource as a dict (one Graph GET).
    success_value, pending_value : str
        State strings.  Matching is case-insensitive on purpose, not exact:
        live Graph spells states camelCase (``azureStorageUriRequestSuccess``)
        while the stage names here, and older tooling, use PascalCase.
    stage : str
        Name used in error messages.
    max_attempts : int
        Number of fetches before giving up.
    delay : float
        Seconds to wait after each pending result.
    cancel_token : CancellationToken, optional
        Delays wait on this token so a cancelled run stops between attempts.

    Returns
    -------
    dict
        The resource from the fetch that reported success.

    Raises
    ------
    UnexpectedStateError
        On the first state that is neither success nor pending.
    PollingTimeoutError
        When *max_attempts* fetches all came back pending.
    """
    token = cancel_token or CancellationToken()

    for attempt in range(1, max_attempts + 1):
        token.raise_if_cancelled()
        resource = fetch_status() or {}
        state = resource.get(status_field)
        logger.debug("Polling %s attempt %d/%d: %s=%s", stage, attempt, max_attempts, status_field, state)

        normalized = (state or "").lower()
        if normalized == success_value.lower():
            logger.info("%s reached %s after %d attempt(s)", stage, state, attempt)
            return resource
        if normalized != pending_value.lower():
            logger.error("%s returned unexpected state '%s': %s", stage, state, resource)
            raise UnexpectedStateError(stage, state)

        if attempt < max_attempts:
            logger.info("%s still pending (%d/%d); retrying in %s seconds", stage, attempt, max_attempts, delay)
            token.wait(delay)

    raise PollingTimeoutError(stage, max_attempts)


def poll_stage(
    fetch_status: Callable[[], Dict[str, Any]],
    stage: str,
    *,
    max_attempts: int,
    delay: float,
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """:func:`poll_until` with the success/pending names derived from *stage*."""
    return poll_until(
        fetch_status,
        success_state(stage),
        pending_state(stage),
        stage=stage,
        max_attempts=max_attempts,
        delay=delay,
        cancel_token=cancel_token,
    )
