"""Retry policy for every upstream call notionmap makes.

Three layers retry, each with its own budget:

* the transport retries a single HTTP request (429, 5xx, network);
* the tree fetcher retries a whole API call once the transport has given
  up with a transient :class:`~notionmap.errors.NotionmapError`;
* the asset proxy retries an asset download on 5xx and network failures.

All of them share :func:`compute_backoff` for the delay between attempts.
"""

from __future__ import annotations

import random

import httpx

from notionmap.errors import TRANSIENT_ERRORS, NotionmapError

# Statuses the Notion API documents as safe to retry.
_RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
)
"""httpx failures raised before any response arrived."""


def _has_attempts_left(attempt: int, max_attempts: int) -> bool:
    return attempt + 1 < max_attempts


def should_retry(
    status_code: int | None,
    exception: Exception | None,
    attempt: int,
    max_attempts: int,
) -> bool:
    """Decide whether the transport should re-send a request.

    Parameters
    ----------
    status_code:
        Response status, or ``None`` when no response arrived.
    exception:
        The httpx exception raised instead of a response, if any.
    attempt:
        Zero-based number of the attempt that just failed.
    max_attempts:
        Total attempts allowed, the first one included.
    """
    if not _has_attempts_left(attempt, max_attempts):
        return False
    if exception is not None:
        return isinstance(exception, RETRYABLE_EXCEPTIONS)
    return status_code in _RETRYABLE_STATUSES


def should_retry_call(exc: NotionmapError, attempt: int, max_attempts: int) -> bool:
    """Decide whether the tree fetcher should repeat a failed API call.

    Only :data:`~notionmap.errors.TRANSIENT_ERRORS` are worth repeating;
    not-found, permission and validation errors will not change.
    """
    return isinstance(exc, TRANSIENT_ERRORS) and _has_attempts_left(attempt, max_attempts)


def should_retry_asset(
    status_code: int | None,
    exception: Exception | None,
    attempt: int,
    max_attempts: int,
) -> bool:
    """Decide whether the asset proxy should download an asset again.

    Storage errors (any 5xx) and network failures are retried.  Every 4xx
    is final here: stale signatures go through the refresh path instead.
    """
    if not _has_attempts_left(attempt, max_attempts):
        return False
    if exception is not None:
        return isinstance(exception, RETRYABLE_EXCEPTIONS)
    return status_code is not None and status_code >= 500


def compute_backoff(
    attempt: int,
    base: float = 1.0,
    maximum: float = 60.0,
    jitter: bool = True,
    retry_after: float | None = None,
) -> float:
    """Return the delay in seconds before attempt ``attempt + 1``.

    ``Retry-After`` wins when the server sent one.  Otherwise the delay
    doubles from *base* with each attempt and stops growing at *maximum*.
    *jitter* scales the result to a random 50-100 % of itself.

    >>> compute_backoff(2, base=1.5, jitter=False)
    6.0
    """
    delay = retry_after if retry_after is not None else min(base * (2 ** attempt), maximum)
    if jitter:
        delay *= 0.5 + random.random() * 0.5
    return delay
