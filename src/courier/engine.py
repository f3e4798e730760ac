"""Delivery engine facade.

Wires the registration store, ledger, executor, retry scheduler and
dispatcher together from Settings.

Example:
    ```python
    from courier import DeliveryEngine, EntityRef, EventType

    async with DeliveryEngine.create() as engine:
        await engine.emit(
            "tenant_1",
            EventType.CONTRACT_UPDATED,
            entity=EntityRef(entity_type="contract", entity_id="ct_42"),
            value=125000,
        )
        await engine.wait_idle()
    ```
"""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any

import httpx

from .config import Settings
from .delivery import DeliveryExecutor, EventDispatcher, Ledger, RetryScheduler
from .exceptions import NotFoundError
from .logging import configure_logging, get_logger
from .models import (
    FAILING_THRESHOLD,
    AttemptResult,
    DomainEvent,
    EntityRef,
    EventType,
    TenantWebhookStats,
    WebhookRegistration,
)
from .storage import InMemoryRegistrationStore, QdrantRegistrationStore, RegistrationStore

logger = get_logger(__name__)


def create_store(settings: Settings) -> RegistrationStore:
    """Build the registration store selected by ``settings.store_backend``."""
    if settings.store_backend == "qdrant":
        return QdrantRegistrationStore(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
        )
    return InMemoryRegistrationStore()


@dataclass
class DeliveryEngine:
    """Outbound webhook delivery for domain events.

    Attributes:
        store: Registration store.
        ledger: Writer of registration statistics and status.
        dispatcher: Event router and task runner.
        settings: Configuration settings.
    """

    store: RegistrationStore
    ledger: Ledger
    dispatcher: EventDispatcher
    settings: Settings

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        store: RegistrationStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DeliveryEngine:
        """Create an engine with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            store: Registration store. Built from settings if None.
            transport: Optional httpx transport for deliveries.

        Returns:
            Configured DeliveryEngine instance.
        """
        if settings is None:
            settings = Settings()
        if store is None:
            store = create_store(settings)

        ledger = Ledger(store, conflict_retries=settings.ledger_conflict_retries)
        dispatcher = EventDispatcher(
            store,
            ledger,
            executor=DeliveryExecutor(user_agent=settings.user_agent, transport=transport),
            scheduler=RetryScheduler(max_delay_seconds=settings.max_retry_delay_seconds),
            max_concurrent=settings.max_concurrent_deliveries,
        )
        return cls(store=store, ledger=ledger, dispatcher=dispatcher, settings=settings)

    async def initialize(self) -> None:
        """Configure logging and connect the store, creating collections if needed."""
        configure_logging(self.settings.log_level, self.settings.log_format)
        if isinstance(self.store, QdrantRegistrationStore):
            await self.store.initialize()
        logger.info(
            "Delivery engine started",
            store_backend=type(self.store).__name__,
            max_concurrent=self.settings.max_concurrent_deliveries,
        )

    async def close(self) -> None:
        """Cancel pending deliveries and release the store."""
        await self.dispatcher.close()
        if isinstance(self.store, QdrantRegistrationStore):
            await self.store.close()

    async def __aenter__(self) -> DeliveryEngine:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def register(self, registration: WebhookRegistration) -> WebhookRegistration:
        """Store a new or replaced registration."""
        return await self.store.save_registration(registration)

    async def unregister(self, registration_id: str) -> bool:
        """Delete a registration. Pending retries for it stop at their next check."""
        return await self.store.delete_registration(registration_id)

    async def publish(self, event: DomainEvent) -> list[str]:
        """Route an event to its subscribers.

        Returns:
            IDs of the registrations a delivery was started for.
        """
        return await self.dispatcher.dispatch(event)

    async def emit(
        self,
        tenant_id: str,
        event_type: EventType | str,
        entity: EntityRef | None = None,
        **data: Any,
    ) -> DomainEvent:
        """Build and publish an event in one call.

        Returns:
            The published event.
        """
        event = DomainEvent(
            tenant_id=tenant_id,
            event_type=EventType(event_type),
            entity=entity,
            data=data,
        )
        await self.publish(event)
        return event

    async def run(self, events: AsyncIterable[DomainEvent]) -> int:
        """Consume an event stream until it ends. Returns the number of events."""
        return await self.dispatcher.consume(events)

    async def pause(self, registration_id: str) -> WebhookRegistration:
        return await self.ledger.pause(registration_id)

    async def resume(self, registration_id: str) -> WebhookRegistration:
        return await self.ledger.resume(registration_id)

    async def get_registration(self, registration_id: str) -> WebhookRegistration | None:
        return await self.store.get_registration(registration_id)

    async def tenant_stats(self, tenant_id: str) -> TenantWebhookStats:
        return await self.store.tenant_stats(tenant_id)

    async def registrations_needing_inspection(
        self,
        min_consecutive_failures: int = FAILING_THRESHOLD,
        tenant_id: str | None = None,
    ) -> list[WebhookRegistration]:
        """Registrations with repeated consecutive failures, worst first."""
        return await self.store.list_needing_inspection(min_consecutive_failures, tenant_id)

    async def send_test(self, registration_id: str) -> AttemptResult:
        """Send a TEST ping to a registration without recording it.

        Raises:
            NotFoundError: If the registration does not exist.
        """
        registration = await self.store.get_registration(registration_id)
        if registration is None:
            raise NotFoundError("webhook_registration", registration_id)
        return await self.dispatcher.send_test(registration)

    async def wait_idle(self) -> None:
        """Wait for every in-flight delivery, including retries, to finish."""
        await self.dispatcher.wait_idle()
