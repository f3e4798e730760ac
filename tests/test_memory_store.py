"""Tests for the in-memory registration store."""

from __future__ import annotations

import pytest

from courier.exceptions import ConcurrencyError
from courier.models import EventType, WebhookStatus
from courier.storage import InMemoryRegistrationStore, RegistrationStore


class TestInMemoryRegistrationStore:
    """Tests for InMemoryRegistrationStore."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, RegistrationStore)

    async def test_save_and_get(self, store, make_registration):
        registration = make_registration()

        stored = await store.save_registration(registration)

        assert stored.version == 1
        fetched = await store.get_registration(registration.id)
        assert fetched == stored

    async def test_get_missing(self, store):
        assert await store.get_registration("whk_missing") is None

    async def test_version_bumps(self, store, make_registration):
        stored = await store.save_registration(make_registration())
        again = await store.save_registration(stored, expected_version=1)
        assert again.version == 2

    async def test_stale_write_rejected(self, store, make_registration):
        """A save with an outdated expected_version fails."""
        stored = await store.save_registration(make_registration())
        await store.save_registration(stored, expected_version=1)

        with pytest.raises(ConcurrencyError) as exc_info:
            await store.save_registration(stored, expected_version=1)
        assert exc_info.value.actual_version == 2

    async def test_returns_independent_copies(self, store, make_registration):
        """Mutating a returned registration does not change the store."""
        stored = await store.save_registration(make_registration(custom_headers={"X-A": "1"}))
        stored.custom_headers["X-A"] = "changed"

        fetched = await store.get_registration(stored.id)
        assert fetched.custom_headers == {"X-A": "1"}

    async def test_list_filters(self, store, make_registration):
        a = await store.save_registration(make_registration())
        b = await store.save_registration(
            make_registration(event_type=EventType.INVOICE_CREATED, status=WebhookStatus.FAILING)
        )
        await store.save_registration(make_registration(tenant_id="tenant_2"))

        assert {r.id for r in await store.list_registrations("tenant_1")} == {a.id, b.id}
        by_type = await store.list_registrations("tenant_1", event_type=EventType.INVOICE_CREATED)
        assert [r.id for r in by_type] == [b.id]
        by_status = await store.list_registrations("tenant_1", status=WebhookStatus.ACTIVE)
        assert [r.id for r in by_status] == [a.id]

    async def test_list_for_event_only_deliverable(self, store, make_registration):
        active = await store.save_registration(make_registration())
        failing = await store.save_registration(make_registration(status=WebhookStatus.FAILING))
        await store.save_registration(make_registration(status=WebhookStatus.PAUSED))
        await store.save_registration(
            make_registration(status=WebhookStatus.DISABLED, is_active=False)
        )
        await store.save_registration(make_registration(event_type=EventType.CONTRACT_CREATED))

        matches = await store.list_for_event("tenant_1", EventType.CONTRACT_UPDATED)

        assert {r.id for r in matches} == {active.id, failing.id}

    async def test_list_needing_inspection(self, store, make_registration):
        await store.save_registration(make_registration(consecutive_failures=1))
        three = await store.save_registration(
            make_registration(status=WebhookStatus.FAILING, consecutive_failures=3)
        )
        seven = await store.save_registration(
            make_registration(status=WebhookStatus.FAILING, consecutive_failures=7)
        )

        matches = await store.list_needing_inspection()

        assert [r.id for r in matches] == [seven.id, three.id]
        assert [r.id for r in await store.list_needing_inspection(5)] == [seven.id]
        assert await store.list_needing_inspection(tenant_id="tenant_2") == []

    async def test_delete(self, store, make_registration):
        stored = await store.save_registration(make_registration())
        assert await store.delete_registration(stored.id) is True
        assert await store.delete_registration(stored.id) is False
        assert await store.get_registration(stored.id) is None

    async def test_tenant_stats(self, store, make_registration):
        await store.save_registration(
            make_registration(total_deliveries=4, successful_deliveries=3, failed_deliveries=1)
        )
        await store.save_registration(make_registration(tenant_id="tenant_2"))

        stats = await store.tenant_stats("tenant_1")

        assert stats.total_webhooks == 1
        assert stats.success_rate == 75.0

    async def test_seeded(self, make_registration):
        registration = make_registration()
        store = InMemoryRegistrationStore([registration])
        assert await store.get_registration(registration.id) is not None
