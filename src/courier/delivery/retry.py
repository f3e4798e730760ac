"""Retry scheduling with exponential backoff and jitter.

After a retryable failure of attempt n, the next attempt waits

    retry_delay_seconds * 2 ** (n - 1) + uniform[0, retry_delay_seconds)

clamped to max_delay_seconds. A task makes at most max_retries + 1 attempts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from courier.models import utc_now

if TYPE_CHECKING:
    from courier.models import DeliveryTask, WebhookRegistration

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELAY_SECONDS = 3600.0


def base_delay(attempt: int, retry_delay_seconds: float) -> float:
    """Deterministic part of the wait after a failed attempt."""
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    return retry_delay_seconds * (2 ** (attempt - 1))


def backoff_delay(
    attempt: int,
    retry_delay_seconds: float,
    max_delay: float | None = DEFAULT_MAX_DELAY_SECONDS,
    rng: random.Random | None = None,
) -> float:
    """Wait before the attempt following a failed ``attempt``.

    Args:
        attempt: Number of the attempt that just failed (1-indexed).
        retry_delay_seconds: Registration's base delay.
        max_delay: Upper bound for the wait, None for no bound.
        rng: Random source for jitter.

    Returns:
        Delay in seconds.
    """
    jitter = (rng or random).random() * retry_delay_seconds
    delay = base_delay(attempt, retry_delay_seconds) + jitter
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def has_retries_remaining(attempt: int, max_retries: int) -> bool:
    """Whether another attempt may follow ``attempt``."""
    return attempt < max_retries + 1


class RetryScheduler:
    """Decides and waits for retries of a delivery task.

    The wait is a plain coroutine sleep, so a task waiting for its next
    attempt holds no worker slot and blocks nothing else.
    """

    def __init__(
        self,
        max_delay_seconds: float | None = DEFAULT_MAX_DELAY_SECONDS,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_delay = max_delay_seconds
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay(self, task: DeliveryTask, registration: WebhookRegistration) -> float | None:
        """Delay before the task's next attempt, or None when retries are exhausted."""
        if not has_retries_remaining(task.attempt, registration.max_retries):
            return None
        return backoff_delay(
            task.attempt,
            registration.retry_delay_seconds,
            max_delay=self._max_delay,
            rng=self._rng,
        )

    def schedule(self, task: DeliveryTask, delay: float) -> None:
        """Advance the task to its next attempt, due after ``delay`` seconds."""
        task.attempt += 1
        task.next_attempt_at = utc_now() + timedelta(seconds=delay)
        logger.info(
            "Webhook scheduled for retry: %s to %s (attempt %d at %s)",
            task.event.event_type.value,
            task.registration_id,
            task.attempt,
            task.next_attempt_at.isoformat(),
        )

    async def wait(self, delay: float) -> None:
        """Suspend the calling task until the retry is due."""
        await self._sleep(delay)
