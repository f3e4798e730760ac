"""Registration store port.

The delivery engine reads registrations to route events and writes them
back after every terminal outcome. Any backend implementing
RegistrationStore can be plugged in.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from courier.models import FAILING_THRESHOLD

if TYPE_CHECKING:
    from courier.models import (
        EventType,
        TenantWebhookStats,
        WebhookRegistration,
        WebhookStatus,
    )


@runtime_checkable
class RegistrationStore(Protocol):
    """Protocol for webhook registration persistence.

    Writes use optimistic concurrency: every successful save bumps
    ``version``, and a save with ``expected_version`` fails with
    ConcurrencyError if another writer got there first.
    """

    @abstractmethod
    async def get_registration(self, registration_id: str) -> WebhookRegistration | None:
        """Get a registration by ID, or None if it does not exist."""
        ...

    @abstractmethod
    async def save_registration(
        self,
        registration: WebhookRegistration,
        expected_version: int | None = None,
    ) -> WebhookRegistration:
        """Insert or replace a registration.

        Args:
            registration: Registration to store.
            expected_version: If given, the version the caller read; the
                write is rejected when the stored version differs.

        Returns:
            The stored registration, with its new version.

        Raises:
            ConcurrencyError: If expected_version does not match.
        """
        ...

    @abstractmethod
    async def list_registrations(
        self,
        tenant_id: str,
        event_type: EventType | None = None,
        status: WebhookStatus | None = None,
    ) -> list[WebhookRegistration]:
        """List a tenant's registrations, optionally filtered."""
        ...

    @abstractmethod
    async def list_for_event(
        self,
        tenant_id: str,
        event_type: EventType,
    ) -> list[WebhookRegistration]:
        """Registrations that should receive an event (ACTIVE or FAILING, active)."""
        ...

    @abstractmethod
    async def list_needing_inspection(
        self,
        min_consecutive_failures: int = FAILING_THRESHOLD,
        tenant_id: str | None = None,
    ) -> list[WebhookRegistration]:
        """Registrations with at least ``min_consecutive_failures``, worst first."""
        ...

    @abstractmethod
    async def delete_registration(self, registration_id: str) -> bool:
        """Delete a registration. Returns True if it existed."""
        ...

    @abstractmethod
    async def tenant_stats(self, tenant_id: str) -> TenantWebhookStats:
        """Aggregate registration and delivery counts for a tenant."""
        ...
