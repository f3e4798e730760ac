"""Domain events that can trigger webhook deliveries.

Event types form a fixed catalogue grouped by business area. Producers
publish DomainEvent instances; the dispatcher routes each one to the
registrations of the same tenant that subscribe to its type.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class EventType(str, Enum):
    """Event types a webhook registration can subscribe to."""

    # Opportunity
    OPPORTUNITY_CREATED = "OPPORTUNITY_CREATED"
    OPPORTUNITY_UPDATED = "OPPORTUNITY_UPDATED"
    OPPORTUNITY_DEADLINE_APPROACHING = "OPPORTUNITY_DEADLINE_APPROACHING"

    # Pipeline
    PIPELINE_OPPORTUNITY_ADDED = "PIPELINE_OPPORTUNITY_ADDED"
    PIPELINE_STAGE_CHANGED = "PIPELINE_STAGE_CHANGED"
    BID_DECISION_MADE = "BID_DECISION_MADE"

    # Contract
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_UPDATED = "CONTRACT_UPDATED"
    CONTRACT_EXPIRING = "CONTRACT_EXPIRING"
    OPTION_DEADLINE_APPROACHING = "OPTION_DEADLINE_APPROACHING"
    DELIVERABLE_DUE = "DELIVERABLE_DUE"

    # Compliance
    CERTIFICATION_EXPIRING = "CERTIFICATION_EXPIRING"
    CLEARANCE_EXPIRING = "CLEARANCE_EXPIRING"
    COMPLIANCE_ITEM_DUE = "COMPLIANCE_ITEM_DUE"

    # Financial
    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_STATUS_CHANGED = "INVOICE_STATUS_CHANGED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    BUDGET_THRESHOLD_REACHED = "BUDGET_THRESHOLD_REACHED"

    # Document
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_APPROVED = "DOCUMENT_APPROVED"

    # CRM
    CONTACT_CREATED = "CONTACT_CREATED"
    INTERACTION_LOGGED = "INTERACTION_LOGGED"
    FOLLOWUP_DUE = "FOLLOWUP_DUE"

    # System
    USER_CREATED = "USER_CREATED"
    USER_INVITED = "USER_INVITED"
    REPORT_GENERATED = "REPORT_GENERATED"

    @property
    def category(self) -> str:
        """Business area this event type belongs to."""
        return _CATEGORY_BY_TYPE[self]


EVENT_CATEGORIES: dict[str, tuple[EventType, ...]] = {
    "opportunity": (
        EventType.OPPORTUNITY_CREATED,
        EventType.OPPORTUNITY_UPDATED,
        EventType.OPPORTUNITY_DEADLINE_APPROACHING,
    ),
    "pipeline": (
        EventType.PIPELINE_OPPORTUNITY_ADDED,
        EventType.PIPELINE_STAGE_CHANGED,
        EventType.BID_DECISION_MADE,
    ),
    "contract": (
        EventType.CONTRACT_CREATED,
        EventType.CONTRACT_UPDATED,
        EventType.CONTRACT_EXPIRING,
        EventType.OPTION_DEADLINE_APPROACHING,
        EventType.DELIVERABLE_DUE,
    ),
    "compliance": (
        EventType.CERTIFICATION_EXPIRING,
        EventType.CLEARANCE_EXPIRING,
        EventType.COMPLIANCE_ITEM_DUE,
    ),
    "financial": (
        EventType.INVOICE_CREATED,
        EventType.INVOICE_STATUS_CHANGED,
        EventType.PAYMENT_RECEIVED,
        EventType.BUDGET_THRESHOLD_REACHED,
    ),
    "document": (
        EventType.DOCUMENT_UPLOADED,
        EventType.DOCUMENT_APPROVED,
    ),
    "crm": (
        EventType.CONTACT_CREATED,
        EventType.INTERACTION_LOGGED,
        EventType.FOLLOWUP_DUE,
    ),
    "system": (
        EventType.USER_CREATED,
        EventType.USER_INVITED,
        EventType.REPORT_GENERATED,
    ),
}

_CATEGORY_BY_TYPE: dict[EventType, str] = {
    event_type: category
    for category, event_types in EVENT_CATEGORIES.items()
    for event_type in event_types
}


class EntityRef(BaseModel):
    """Reference to the business entity an event is about."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    entity_type: str = Field(description="Entity kind, e.g. 'contract' or 'invoice'")
    entity_id: str = Field(description="Identifier of the entity")


class DomainEvent(BaseModel):
    """Internal event to be delivered to subscribed webhooks.

    Attributes:
        id: Unique identifier for this event (part of the dedup key).
        tenant_id: Tenant the event belongs to.
        event_type: Type from the fixed catalogue.
        occurred_at: When the event occurred.
        entity: Optional reference to the affected entity.
        data: Serializable event payload.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    tenant_id: str = Field(description="Tenant that owns the event")
    event_type: EventType = Field(description="Event type")
    occurred_at: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred",
    )
    entity: EntityRef | None = Field(default=None, description="Affected entity (optional)")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")

    def envelope(self) -> dict[str, Any]:
        """Default JSON body sent to endpoints without a payload template."""
        return {
            "event_id": self.id,
            "event_type": self.event_type.value,
            "category": self.event_type.category,
            "tenant_id": self.tenant_id,
            "timestamp": self.occurred_at.isoformat(),
            "entity": self.entity.model_dump() if self.entity else None,
            "data": self.data,
        }


__all__ = [
    "EVENT_CATEGORIES",
    "DomainEvent",
    "EntityRef",
    "EventType",
]
