"""Delivery ledger.

The only writer of registration state. Each change is applied as
load -> pure transition -> save with the version that was loaded, under a
per-registration lock. Version conflicts from other writers are retried
with a fresh read.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from courier.exceptions import ConcurrencyError, NotFoundError

from . import state

if TYPE_CHECKING:
    from courier.models import DeliveryOutcome, WebhookRegistration
    from courier.storage import RegistrationStore

logger = logging.getLogger(__name__)

Transition = Callable[["WebhookRegistration"], "WebhookRegistration"]


class Ledger:
    """Applies delivery outcomes and status changes to registrations.

    Example:
        ```python
        ledger = Ledger(store)
        updated = await ledger.record(outcome)
        await ledger.pause(registration.id)
        ```
    """

    def __init__(self, store: RegistrationStore, conflict_retries: int = 5) -> None:
        """Initialize the ledger.

        Args:
            store: Registration store to read and write.
            conflict_retries: Attempts per change when the store reports a
                version conflict.
        """
        self._store = store
        self._conflict_retries = conflict_retries
        # A lock lives only while some change to its registration holds it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, registration_id: str) -> asyncio.Lock:
        lock = self._locks.get(registration_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[registration_id] = lock
        return lock

    async def _apply(
        self,
        registration_id: str,
        transition: Transition,
    ) -> WebhookRegistration | None:
        """Atomically apply ``transition``; None if the registration is gone."""
        lock = self._lock_for(registration_id)
        async with lock:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(ConcurrencyError),
                stop=stop_after_attempt(self._conflict_retries),
                wait=wait_random(min=0, max=0.05),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "Retrying ledger write for %s after version conflict (attempt %d)",
                            registration_id,
                            attempt.retry_state.attempt_number,
                        )
                    current = await self._store.get_registration(registration_id)
                    if current is None:
                        return None
                    return await self._store.save_registration(
                        transition(current),
                        expected_version=current.version,
                    )
        return None

    async def record(self, outcome: DeliveryOutcome) -> WebhookRegistration | None:
        """Record the terminal outcome of one delivery task.

        Returns:
            The updated registration, or None if it was deleted meanwhile.
        """
        updated = await self._apply(
            outcome.registration_id,
            lambda registration: state.apply_outcome(registration, outcome),
        )
        if updated is None:
            logger.warning(
                "Dropping outcome for deleted registration %s (event %s)",
                outcome.registration_id,
                outcome.event_id,
            )
            return None

        if not outcome.succeeded:
            logger.info(
                "Webhook %s failure recorded: %d consecutive, status %s",
                updated.id,
                updated.consecutive_failures,
                updated.status.value,
            )
        return updated

    async def pause(self, registration_id: str) -> WebhookRegistration:
        """Pause deliveries to a registration.

        Raises:
            NotFoundError: If the registration does not exist.
            InvalidTransitionError: If it is disabled or already paused.
        """
        updated = await self._apply(registration_id, state.pause)
        if updated is None:
            raise NotFoundError("webhook_registration", registration_id)
        logger.info("Webhook %s paused", registration_id)
        return updated

    async def resume(self, registration_id: str) -> WebhookRegistration:
        """Resume a paused registration.

        Raises:
            NotFoundError: If the registration does not exist.
            InvalidTransitionError: If it is not paused.
        """
        updated = await self._apply(registration_id, state.resume)
        if updated is None:
            raise NotFoundError("webhook_registration", registration_id)
        logger.info("Webhook %s resumed as %s", registration_id, updated.status.value)
        return updated

    @staticmethod
    def success_rate(registration: WebhookRegistration) -> float | None:
        """Percentage of successful deliveries, None before the first delivery."""
        return registration.success_rate
