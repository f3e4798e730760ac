"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from helpers import SECRET, TENANT, ScriptedEndpoint, zero_jitter  # noqa: E402

from courier.delivery import (  # noqa: E402
    DeliveryExecutor,
    EventDispatcher,
    Ledger,
    RetryScheduler,
)
from courier.models import DomainEvent, EntityRef, EventType, WebhookRegistration  # noqa: E402
from courier.storage import InMemoryRegistrationStore  # noqa: E402


@pytest.fixture
def make_registration() -> Callable[..., WebhookRegistration]:
    """Factory for registrations subscribed to CONTRACT_UPDATED."""

    def _make(**overrides: Any) -> WebhookRegistration:
        fields: dict[str, Any] = {
            "tenant_id": TENANT,
            "name": "ERP sync",
            "url": "https://example.com/webhook",
            "event_type": EventType.CONTRACT_UPDATED,
            "secret": SECRET,
            "retry_delay_seconds": 60,
        }
        fields.update(overrides)
        return WebhookRegistration(**fields)

    return _make


@pytest.fixture
def sample_event() -> DomainEvent:
    """A contract update for the default tenant."""
    return DomainEvent(
        id="evt_test456",
        tenant_id=TENANT,
        event_type=EventType.CONTRACT_UPDATED,
        entity=EntityRef(entity_type="contract", entity_id="ct_42"),
        data={"value": 125000, "status": "ACTIVE"},
    )


@pytest.fixture
def store() -> InMemoryRegistrationStore:
    return InMemoryRegistrationStore()


@pytest.fixture
def ledger(store: InMemoryRegistrationStore) -> Ledger:
    return Ledger(store)


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Sleep replacement that returns immediately and records delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def scheduler(no_sleep: AsyncMock) -> RetryScheduler:
    return RetryScheduler(rng=zero_jitter(), sleep=no_sleep)


@pytest.fixture
def make_dispatcher(
    store: InMemoryRegistrationStore,
    ledger: Ledger,
    scheduler: RetryScheduler,
) -> Callable[..., EventDispatcher]:
    """Factory for dispatchers wired to the in-memory store and a mock transport."""

    def _make(
        endpoint: ScriptedEndpoint | httpx.MockTransport,
        **kwargs: Any,
    ) -> EventDispatcher:
        transport = endpoint.transport if isinstance(endpoint, ScriptedEndpoint) else endpoint
        kwargs.setdefault("scheduler", scheduler)
        return EventDispatcher(
            store,
            ledger,
            executor=DeliveryExecutor(transport=transport),
            **kwargs,
        )

    return _make
