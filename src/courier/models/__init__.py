"""Data models for Courier.

Event Types:
    - DomainEvent: Internal event to deliver, scoped to a tenant
    - EventType: Fixed catalogue of deliverable event types

Registrations:
    - WebhookRegistration: Delivery target, policy, status and ledger
    - WebhookStatus: ACTIVE / PAUSED / FAILING / DISABLED circuit state
    - TenantWebhookStats: Per-tenant aggregates

Delivery:
    - DeliveryTask: One event to one registration (ephemeral)
    - AttemptResult: Classified result of one HTTP attempt
    - DeliveryOutcome: Terminal outcome recorded by the ledger
"""

from .base import generate_id, utc_now
from .delivery import AttemptResult, DeliveryOutcome, DeliveryTask, OutcomeKind
from .events import EVENT_CATEGORIES, DomainEvent, EntityRef, EventType
from .registration import (
    FAILING_THRESHOLD,
    RESERVED_HEADERS,
    HttpMethod,
    TenantWebhookStats,
    WebhookRegistration,
    WebhookStatus,
)

__all__ = [
    # Helpers
    "generate_id",
    "utc_now",
    # Events
    "EVENT_CATEGORIES",
    "DomainEvent",
    "EntityRef",
    "EventType",
    # Registrations
    "FAILING_THRESHOLD",
    "RESERVED_HEADERS",
    "HttpMethod",
    "TenantWebhookStats",
    "WebhookRegistration",
    "WebhookStatus",
    # Delivery
    "AttemptResult",
    "DeliveryOutcome",
    "DeliveryTask",
    "OutcomeKind",
]
