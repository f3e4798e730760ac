"""Process-local registration store.

Keeps registrations in a dict. Suitable for tests, development and
single-process deployments that can rebuild registrations on start.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from courier.exceptions import ConcurrencyError
from courier.models import FAILING_THRESHOLD, TenantWebhookStats

if TYPE_CHECKING:
    from courier.models import EventType, WebhookRegistration, WebhookStatus


class InMemoryRegistrationStore:
    """RegistrationStore backed by a dictionary.

    Registrations are copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(self, registrations: list[WebhookRegistration] | None = None) -> None:
        self._registrations: dict[str, WebhookRegistration] = {}
        self._lock = asyncio.Lock()
        for registration in registrations or []:
            self._registrations[registration.id] = registration.model_copy(deep=True)

    async def get_registration(self, registration_id: str) -> WebhookRegistration | None:
        registration = self._registrations.get(registration_id)
        return registration.model_copy(deep=True) if registration else None

    async def save_registration(
        self,
        registration: WebhookRegistration,
        expected_version: int | None = None,
    ) -> WebhookRegistration:
        async with self._lock:
            current = self._registrations.get(registration.id)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                raise ConcurrencyError(registration.id, expected_version, current_version)
            stored = registration.model_copy(update={"version": current_version + 1}, deep=True)
            self._registrations[registration.id] = stored
            return stored.model_copy(deep=True)

    async def list_registrations(
        self,
        tenant_id: str,
        event_type: EventType | None = None,
        status: WebhookStatus | None = None,
    ) -> list[WebhookRegistration]:
        return [
            r.model_copy(deep=True)
            for r in self._registrations.values()
            if r.tenant_id == tenant_id
            and (event_type is None or r.event_type == event_type)
            and (status is None or r.status == status)
        ]

    async def list_for_event(
        self,
        tenant_id: str,
        event_type: EventType,
    ) -> list[WebhookRegistration]:
        return [
            r.model_copy(deep=True)
            for r in self._registrations.values()
            if r.subscribes_to(tenant_id, event_type)
        ]

    async def list_needing_inspection(
        self,
        min_consecutive_failures: int = FAILING_THRESHOLD,
        tenant_id: str | None = None,
    ) -> list[WebhookRegistration]:
        matches = [
            r.model_copy(deep=True)
            for r in self._registrations.values()
            if r.consecutive_failures >= min_consecutive_failures
            and (tenant_id is None or r.tenant_id == tenant_id)
        ]
        matches.sort(key=lambda r: r.consecutive_failures, reverse=True)
        return matches

    async def delete_registration(self, registration_id: str) -> bool:
        async with self._lock:
            return self._registrations.pop(registration_id, None) is not None

    async def tenant_stats(self, tenant_id: str) -> TenantWebhookStats:
        return TenantWebhookStats.summarize(tenant_id, await self.list_registrations(tenant_id))
