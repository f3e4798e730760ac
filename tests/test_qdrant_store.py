"""Tests for the Qdrant registration store (local in-memory mode)."""

from __future__ import annotations

import re
from unittest.mock import AsyncMock

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from courier.exceptions import ConcurrencyError, StorageError
from courier.models import EventType, HttpMethod, WebhookStatus
from courier.storage import QdrantRegistrationStore, RegistrationStore


@pytest.fixture
async def qdrant_store():
    """QdrantRegistrationStore backed by an in-memory Qdrant client."""
    store = QdrantRegistrationStore(url="http://localhost:6333", prefix="test")
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    yield store
    await store.close()


class TestQdrantRegistrationStore:
    """Tests for QdrantRegistrationStore."""

    def test_satisfies_protocol(self):
        assert isinstance(QdrantRegistrationStore(), RegistrationStore)

    def test_client_requires_initialize(self):
        store = QdrantRegistrationStore()
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = store.client

    def test_collection_name(self):
        assert QdrantRegistrationStore(prefix="acme").collection_name == "acme_webhooks"

    def test_point_id_is_deterministic_uuid(self):
        point_id = QdrantRegistrationStore._key_to_point_id("whk_abc")
        assert point_id == QdrantRegistrationStore._key_to_point_id("whk_abc")
        assert re.fullmatch(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", point_id)

    async def test_ensure_collections_idempotent(self, qdrant_store):
        await qdrant_store._ensure_collections()
        collections = await qdrant_store.client.get_collections()
        assert [c.name for c in collections.collections] == ["test_webhooks"]

    async def test_save_and_get_roundtrip(self, qdrant_store, make_registration):
        registration = make_registration(
            http_method=HttpMethod.PATCH,
            custom_headers={"X-Tenant": "acme"},
            payload_template='{"id": {{ event_id }}}',
        )

        stored = await qdrant_store.save_registration(registration)
        fetched = await qdrant_store.get_registration(registration.id)

        assert stored.version == 1
        assert fetched == stored
        assert fetched.http_method == HttpMethod.PATCH
        assert fetched.secret == registration.secret

    async def test_get_missing(self, qdrant_store):
        assert await qdrant_store.get_registration("whk_missing") is None

    async def test_version_conflict(self, qdrant_store, make_registration):
        stored = await qdrant_store.save_registration(make_registration())
        await qdrant_store.save_registration(stored, expected_version=1)

        with pytest.raises(ConcurrencyError):
            await qdrant_store.save_registration(stored, expected_version=1)

    async def test_list_registrations(self, qdrant_store, make_registration):
        a = await qdrant_store.save_registration(make_registration())
        b = await qdrant_store.save_registration(
            make_registration(event_type=EventType.INVOICE_CREATED)
        )
        await qdrant_store.save_registration(make_registration(tenant_id="tenant_2"))

        assert {r.id for r in await qdrant_store.list_registrations("tenant_1")} == {a.id, b.id}
        by_type = await qdrant_store.list_registrations(
            "tenant_1", event_type=EventType.INVOICE_CREATED
        )
        assert [r.id for r in by_type] == [b.id]
        by_status = await qdrant_store.list_registrations(
            "tenant_1", status=WebhookStatus.PAUSED
        )
        assert by_status == []

    async def test_list_for_event(self, qdrant_store, make_registration):
        active = await qdrant_store.save_registration(make_registration())
        failing = await qdrant_store.save_registration(
            make_registration(status=WebhookStatus.FAILING, consecutive_failures=4)
        )
        await qdrant_store.save_registration(
            make_registration(status=WebhookStatus.PAUSED, paused_from=WebhookStatus.ACTIVE)
        )
        await qdrant_store.save_registration(
            make_registration(status=WebhookStatus.DISABLED, is_active=False)
        )

        matches = await qdrant_store.list_for_event("tenant_1", EventType.CONTRACT_UPDATED)

        assert {r.id for r in matches} == {active.id, failing.id}

    async def test_list_needing_inspection(self, qdrant_store, make_registration):
        await qdrant_store.save_registration(make_registration(consecutive_failures=2))
        four = await qdrant_store.save_registration(
            make_registration(status=WebhookStatus.FAILING, consecutive_failures=4)
        )
        eight = await qdrant_store.save_registration(
            make_registration(status=WebhookStatus.FAILING, consecutive_failures=8)
        )

        matches = await qdrant_store.list_needing_inspection()

        assert [r.id for r in matches] == [eight.id, four.id]

    async def test_delete(self, qdrant_store, make_registration):
        stored = await qdrant_store.save_registration(make_registration())
        assert await qdrant_store.delete_registration(stored.id) is True
        assert await qdrant_store.delete_registration(stored.id) is False
        assert await qdrant_store.get_registration(stored.id) is None

    async def test_tenant_stats(self, qdrant_store, make_registration):
        await qdrant_store.save_registration(
            make_registration(total_deliveries=4, successful_deliveries=3, failed_deliveries=1)
        )
        stats = await qdrant_store.tenant_stats("tenant_1")
        assert stats.total_webhooks == 1
        assert stats.success_rate == 75.0

    async def test_transient_errors_surface_as_storage_error(self, qdrant_store):
        """Failures that outlast retries are reported as StorageError."""
        qdrant_store._retrieve = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(StorageError, match="get_registration"):
            await qdrant_store.get_registration("whk_1")

    async def test_context_manager(self):
        async with QdrantRegistrationStore(location=":memory:", prefix="ctx") as store:
            assert store.collection_name in [
                c.name for c in (await store.client.get_collections()).collections
            ]
        assert store._client is None
