"""Qdrant-backed registration store.

Registrations are stored as payload-only points (a 1-dimensional zero
vector) in a single ``{prefix}_webhooks`` collection. Filtering uses
payload indexes on the routing fields.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from qdrant_client import AsyncQdrantClient, models

from courier.config import settings
from courier.exceptions import ConcurrencyError, StorageError
from courier.models import (
    FAILING_THRESHOLD,
    TenantWebhookStats,
    WebhookRegistration,
    WebhookStatus,
)

from .retry import TRANSIENT_ERRORS, qdrant_retry

if TYPE_CHECKING:
    from courier.models import EventType

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

COLLECTION_SUFFIX = "webhooks"

# Payload fields used in filters
KEYWORD_INDEXES = ("id", "tenant_id", "event_type", "status")
VECTOR_SIZE = 1
SCROLL_PAGE_SIZE = 256


def _storage_errors(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Surface Qdrant failures that survived retries as StorageError."""

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await fn(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            raise StorageError(f"Qdrant operation {fn.__name__} failed: {e}") from e

    return wrapper


class QdrantRegistrationStore:
    """RegistrationStore persisted in Qdrant.

    The version check is a read-compare-write guarded by an in-process
    lock, so it protects against concurrent writers inside one process.

    Example:
        ```python
        async with QdrantRegistrationStore(url="http://localhost:6333") as store:
            await store.save_registration(registration)
            matches = await store.list_for_event("tenant_1", EventType.CONTRACT_UPDATED)
        ```
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        location: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            location: Local mode location such as ":memory:". Overrides url.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._location = location
        self._client: AsyncQdrantClient | None = None
        self._write_lock = asyncio.Lock()

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def collection_name(self) -> str:
        return f"{self._prefix}_{COLLECTION_SUFFIX}"

    async def initialize(self) -> None:
        """Connect and ensure the collection exists."""
        if self._location is not None:
            self._client = AsyncQdrantClient(location=self._location)
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()

    async def close(self) -> None:
        """Close the client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> QdrantRegistrationStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @staticmethod
    def _key_to_point_id(registration_id: str) -> str:
        """Derive a deterministic UUID-format point ID from a registration ID."""
        h = hashlib.sha256(registration_id.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    @qdrant_retry
    async def _ensure_collections(self) -> None:
        collections = await self.client.get_collections()
        existing = [c.name for c in collections.collections]
        if self.collection_name in existing:
            return

        logger.info("Creating Qdrant collection %s", self.collection_name)
        await self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(
                size=VECTOR_SIZE,
                distance=models.Distance.COSINE,
            ),
        )
        for field_name in KEYWORD_INDEXES:
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        await self.client.create_payload_index(
            collection_name=self.collection_name,
            field_name="is_active",
            field_schema=models.PayloadSchemaType.BOOL,
        )
        await self.client.create_payload_index(
            collection_name=self.collection_name,
            field_name="consecutive_failures",
            field_schema=models.PayloadSchemaType.INTEGER,
        )

    @qdrant_retry
    async def _retrieve(self, registration_id: str) -> WebhookRegistration | None:
        results = await self.client.retrieve(
            collection_name=self.collection_name,
            ids=[self._key_to_point_id(registration_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return WebhookRegistration.model_validate(results[0].payload)

    @qdrant_retry
    async def _upsert(self, registration: WebhookRegistration) -> None:
        await self.client.upsert(
            collection_name=self.collection_name,
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(registration.id),
                    vector=[0.0] * VECTOR_SIZE,
                    payload=registration.model_dump(mode="json"),
                )
            ],
        )

    @qdrant_retry
    async def _scroll(self, conditions: list[models.Condition]) -> list[WebhookRegistration]:
        registrations: list[WebhookRegistration] = []
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=models.Filter(must=conditions) if conditions else None,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
            )
            registrations.extend(
                WebhookRegistration.model_validate(p.payload)
                for p in points
                if p.payload is not None
            )
            if offset is None:
                return registrations

    @_storage_errors
    async def get_registration(self, registration_id: str) -> WebhookRegistration | None:
        return await self._retrieve(registration_id)

    @_storage_errors
    async def save_registration(
        self,
        registration: WebhookRegistration,
        expected_version: int | None = None,
    ) -> WebhookRegistration:
        async with self._write_lock:
            current = await self._retrieve(registration.id)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                raise ConcurrencyError(registration.id, expected_version, current_version)
            stored = registration.model_copy(update={"version": current_version + 1})
            await self._upsert(stored)
            return stored

    @_storage_errors
    async def list_registrations(
        self,
        tenant_id: str,
        event_type: EventType | None = None,
        status: WebhookStatus | None = None,
    ) -> list[WebhookRegistration]:
        conditions: list[models.Condition] = [
            models.FieldCondition(key="tenant_id", match=models.MatchValue(value=tenant_id))
        ]
        if event_type is not None:
            conditions.append(
                models.FieldCondition(
                    key="event_type", match=models.MatchValue(value=event_type.value)
                )
            )
        if status is not None:
            conditions.append(
                models.FieldCondition(key="status", match=models.MatchValue(value=status.value))
            )
        return await self._scroll(conditions)

    @_storage_errors
    async def list_for_event(
        self,
        tenant_id: str,
        event_type: EventType,
    ) -> list[WebhookRegistration]:
        conditions: list[models.Condition] = [
            models.FieldCondition(key="tenant_id", match=models.MatchValue(value=tenant_id)),
            models.FieldCondition(
                key="event_type", match=models.MatchValue(value=event_type.value)
            ),
            models.FieldCondition(key="is_active", match=models.MatchValue(value=True)),
            models.FieldCondition(
                key="status",
                match=models.MatchAny(
                    any=[WebhookStatus.ACTIVE.value, WebhookStatus.FAILING.value]
                ),
            ),
        ]
        return await self._scroll(conditions)

    @_storage_errors
    async def list_needing_inspection(
        self,
        min_consecutive_failures: int = FAILING_THRESHOLD,
        tenant_id: str | None = None,
    ) -> list[WebhookRegistration]:
        conditions: list[models.Condition] = [
            models.FieldCondition(
                key="consecutive_failures",
                range=models.Range(gte=min_consecutive_failures),
            )
        ]
        if tenant_id is not None:
            conditions.append(
                models.FieldCondition(key="tenant_id", match=models.MatchValue(value=tenant_id))
            )
        matches = await self._scroll(conditions)
        matches.sort(key=lambda r: r.consecutive_failures, reverse=True)
        return matches

    @_storage_errors
    async def delete_registration(self, registration_id: str) -> bool:
        async with self._write_lock:
            if await self._retrieve(registration_id) is None:
                return False
            await self._delete(registration_id)
            return True

    @qdrant_retry
    async def _delete(self, registration_id: str) -> None:
        await self.client.delete(
            collection_name=self.collection_name,
            points_selector=models.PointIdsList(
                points=[self._key_to_point_id(registration_id)],
            ),
        )

    async def tenant_stats(self, tenant_id: str) -> TenantWebhookStats:
        return TenantWebhookStats.summarize(tenant_id, await self.list_registrations(tenant_id))
