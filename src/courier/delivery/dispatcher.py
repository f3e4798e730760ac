"""Event router and delivery task runner.

Each matching registration gets its own asyncio task. A task makes HTTP
attempts through the executor, sleeps between retryable failures and hands
its terminal outcome to the ledger exactly once.

Concurrency:
    - A semaphore bounds HTTP attempts in flight. Backoff waits happen
      outside it.
    - At most one task per (registration_id, event_id) is in flight.
    - Before every retry the registration is re-read once a slot is held,
      right before the request; a task whose registration was paused,
      disabled or deleted stops without recording.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable
from typing import TYPE_CHECKING

from courier.logging import delivery_context, get_logger
from courier.models import DeliveryOutcome, DeliveryTask, OutcomeKind

from .executor import DeliveryExecutor
from .retry import RetryScheduler

if TYPE_CHECKING:
    from courier.models import AttemptResult, DomainEvent, WebhookRegistration
    from courier.storage import RegistrationStore

    from .ledger import Ledger

logger = get_logger(__name__)

DedupKey = tuple[str, str]


class EventDispatcher:
    """Routes domain events to subscribed registrations.

    Example:
        ```python
        dispatcher = EventDispatcher(store, Ledger(store), max_concurrent=20)
        await dispatcher.dispatch(event)
        await dispatcher.wait_idle()
        ```
    """

    def __init__(
        self,
        store: RegistrationStore,
        ledger: Ledger,
        executor: DeliveryExecutor | None = None,
        scheduler: RetryScheduler | None = None,
        max_concurrent: int = 10,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Registration store used for routing and re-checks.
            ledger: Ledger that records terminal outcomes.
            executor: Executor for HTTP attempts.
            scheduler: Retry scheduler for backoff decisions and waits.
            max_concurrent: Maximum HTTP attempts in flight.
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._store = store
        self._ledger = ledger
        self._executor = executor or DeliveryExecutor()
        self._scheduler = scheduler or RetryScheduler()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[DedupKey, asyncio.Task[DeliveryOutcome | None]] = {}
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of delivery tasks not yet finished."""
        return len(self._tasks)

    async def dispatch(self, event: DomainEvent) -> list[str]:
        """Start a delivery task for every registration subscribed to the event.

        Returns:
            IDs of the registrations a task was started for.

        Raises:
            StorageError: If the registration lookup fails.
            RuntimeError: If the dispatcher has been closed.
        """
        if self._closed:
            raise RuntimeError("Dispatcher is closed")

        registrations = await self._store.list_for_event(event.tenant_id, event.event_type)
        started: list[str] = []
        for registration in registrations:
            if self._start(registration, event) is not None:
                started.append(registration.id)

        logger.debug(
            "Event dispatched",
            event_id=event.id,
            event_type=event.event_type.value,
            tenant_id=event.tenant_id,
            matched=len(registrations),
            started=len(started),
        )
        return started

    async def deliver(
        self,
        registration: WebhookRegistration,
        event: DomainEvent,
    ) -> DeliveryOutcome | None:
        """Deliver one event to one registration and wait for the outcome.

        Returns:
            The recorded outcome, or None if the registration is not
            deliverable, the task was a duplicate or it was cancelled
            before completing.
        """
        if self._closed:
            raise RuntimeError("Dispatcher is closed")
        if not registration.is_deliverable:
            logger.info(
                "Delivery skipped, registration not deliverable",
                registration_id=registration.id,
                status=registration.status.value,
            )
            return None
        task = self._start(registration, event)
        if task is None:
            return None
        return await task

    async def consume(self, events: AsyncIterable[DomainEvent]) -> int:
        """Dispatch every event from an async stream until it ends.

        Routing errors for one event are logged and do not stop the stream.

        Returns:
            Number of events consumed.
        """
        consumed = 0
        async for event in events:
            consumed += 1
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Failed to route event", event_id=event.id)
        return consumed

    async def send_test(self, registration: WebhookRegistration) -> AttemptResult:
        """Send a TEST ping to a registration. Not recorded in the ledger."""
        async with self._semaphore:
            return await self._executor.send_test(registration)

    async def wait_idle(self) -> None:
        """Wait until every in-flight task, including retries, has finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    async def close(self) -> None:
        """Stop accepting events and cancel pending tasks."""
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Dispatcher closed", cancelled=len(tasks))

    def _start(
        self,
        registration: WebhookRegistration,
        event: DomainEvent,
    ) -> asyncio.Task[DeliveryOutcome | None] | None:
        delivery = DeliveryTask(registration_id=registration.id, event=event)
        key = delivery.dedup_key
        if key in self._tasks:
            logger.info(
                "Duplicate delivery dropped",
                registration_id=registration.id,
                event_id=event.id,
            )
            return None

        task = asyncio.create_task(
            self._run(delivery, registration),
            name=f"deliver:{delivery.delivery_id}",
        )
        self._tasks[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    def _forget(self, key: DedupKey, done: asyncio.Task[DeliveryOutcome | None]) -> None:
        if self._tasks.get(key) is done:
            del self._tasks[key]

    async def _run(
        self,
        task: DeliveryTask,
        registration: WebhookRegistration,
    ) -> DeliveryOutcome | None:
        with delivery_context(
            task.registration_id,
            task.event.id,
            event_type=task.event.event_type.value,
        ):
            try:
                outcome = await self._attempt_until_terminal(task, registration)
                if outcome is None:
                    return None
                await self._ledger.record(outcome)
                return outcome
            except Exception:
                logger.exception("Delivery task failed", attempt=task.attempt)
                return None

    async def _attempt_until_terminal(
        self,
        task: DeliveryTask,
        registration: WebhookRegistration,
    ) -> DeliveryOutcome | None:
        http_attempts = 0
        while True:
            async with self._semaphore:
                if task.attempt > 1:
                    current = await self._store.get_registration(task.registration_id)
                    if current is None or not current.is_deliverable:
                        logger.info(
                            "Retry cancelled, registration no longer deliverable",
                            attempt=task.attempt,
                            status=current.status.value if current else "deleted",
                        )
                        return None
                    registration = current
                result = await self._executor.execute(registration, task)
            if result.kind != OutcomeKind.CONFIGURATION:
                http_attempts += 1

            if not result.retryable:
                return DeliveryOutcome.from_attempt(task, result, attempts=http_attempts)

            delay = self._scheduler.next_delay(task, registration)
            if delay is None:
                logger.warning(
                    "Retries exhausted",
                    attempts=http_attempts,
                    reason=result.reason,
                )
                return DeliveryOutcome.from_attempt(
                    task, result, attempts=http_attempts, exhausted=True
                )

            self._scheduler.schedule(task, delay)
            await self._scheduler.wait(delay)
