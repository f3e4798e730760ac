"""Retry utilities for storage operations.

Exponential backoff for transient network errors when talking to Qdrant.
"""

from __future__ import annotations

import logging

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    httpx.TimeoutException,
    UnexpectedResponse,
)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a retry with the failing call's name and exception."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying Qdrant operation %s (attempt %d): %s",
        retry_state.fn.__name__ if retry_state.fn else "unknown",
        retry_state.attempt_number,
        exception,
    )


# Network and server errors only; client errors are not retried
qdrant_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    before_sleep=_log_retry,
    reraise=True,
)
