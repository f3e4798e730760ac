"""Webhook registration model.

A registration is a tenant's subscription of one target URL to one event
type, together with its delivery shape, retry and circuit policy, runtime
status and lifetime delivery ledger.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import generate_id, utc_now
from .events import EventType

# Consecutive failures after which an endpoint is reported as FAILING
FAILING_THRESHOLD = 3

# Headers the engine always sets; registrations may not override them
RESERVED_HEADERS = frozenset(
    {
        "content-type",
        "user-agent",
        "x-webhook-signature",
        "x-webhook-timestamp",
        "x-webhook-event",
        "x-webhook-delivery",
        "x-webhook-attempt",
    }
)

_HEADER_NAME = re.compile(r"^[A-Za-z0-9!#$%&'*+.^_`|~-]+$")


def _check_header(name: str, value: str) -> None:
    if not _HEADER_NAME.match(name):
        raise ValueError(f"invalid header name: {name!r}")
    if name.lower() in RESERVED_HEADERS:
        raise ValueError(f"header {name} is set by the delivery engine")
    if "\r" in value or "\n" in value:
        raise ValueError(f"header {name} contains a line break")


class WebhookStatus(str, Enum):
    """Circuit state of a registration."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    FAILING = "FAILING"
    DISABLED = "DISABLED"


class HttpMethod(str, Enum):
    """HTTP methods a registration may deliver with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class WebhookRegistration(BaseModel):
    """Tenant-scoped configuration and state for one delivery target.

    Attributes:
        id: Unique identifier for this registration.
        tenant_id: Tenant that owns the registration.
        name: Human-readable name.
        description: Optional description.
        url: Endpoint receiving deliveries.
        event_type: The single event type this registration subscribes to.
        http_method: Method used for deliveries.
        content_type: Content-Type header of the request body.
        custom_headers: Extra request headers.
        payload_template: Optional body template (see courier.delivery.template).
        secret: Shared secret for HMAC-SHA256 signatures.
        auth_header: Optional auth header name.
        auth_value: Value for auth_header.
        max_retries: Retries after the first attempt.
        retry_delay_seconds: Base backoff delay (doubles per attempt).
        timeout_seconds: Per-attempt HTTP timeout.
        disable_after_failures: Consecutive failures that disable the endpoint.
        status: Circuit state.
        is_active: False once disabled; inactive registrations are never routed.
        consecutive_failures: Terminal failures since the last success.
        paused_from: Status to restore when a paused registration resumes.
        total_deliveries: Terminal outcomes recorded.
        successful_deliveries: Successful terminal outcomes.
        failed_deliveries: Failed terminal outcomes.
        last_delivery_at: When the last outcome was recorded.
        last_success_at: When the last success was recorded.
        last_failure_at: When the last failure was recorded.
        last_failure_reason: Reason of the last failure.
        last_response_code: HTTP status of the last outcome, if any.
        version: Optimistic concurrency counter, bumped on every save.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    tenant_id: str = Field(description="Tenant that owns this registration")
    name: str = Field(default="", max_length=100, description="Human-readable name")
    description: str | None = Field(default=None, max_length=500)
    url: str = Field(min_length=1, description="Endpoint receiving deliveries")
    event_type: EventType = Field(description="Subscribed event type")

    # Delivery shape
    http_method: HttpMethod = Field(default=HttpMethod.POST)
    content_type: str = Field(default="application/json")
    custom_headers: dict[str, str] = Field(default_factory=dict)
    payload_template: str | None = Field(default=None)

    # Auth
    secret: str | None = Field(default=None, repr=False, description="HMAC signing secret")
    auth_header: str | None = Field(default=None)
    auth_value: str | None = Field(default=None, repr=False)

    # Retry policy
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay_seconds: int = Field(default=60, ge=1, description="Base backoff delay")
    timeout_seconds: int = Field(default=30, ge=1, description="Per-attempt timeout")

    # Circuit policy
    disable_after_failures: int = Field(default=10, ge=1)

    # Runtime state
    status: WebhookStatus = Field(default=WebhookStatus.ACTIVE)
    is_active: bool = Field(default=True)
    consecutive_failures: int = Field(default=0, ge=0)
    paused_from: WebhookStatus | None = Field(default=None)

    # Lifetime ledger
    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    last_delivery_at: datetime | None = Field(default=None)
    last_success_at: datetime | None = Field(default=None)
    last_failure_at: datetime | None = Field(default=None)
    last_failure_reason: str | None = Field(default=None, max_length=1000)
    last_response_code: int | None = Field(default=None)

    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("custom_headers")
    @classmethod
    def _check_custom_headers(cls, headers: dict[str, str]) -> dict[str, str]:
        seen: set[str] = set()
        for name, value in headers.items():
            _check_header(name, value)
            if name.lower() in seen:
                raise ValueError(f"header {name} is given more than once")
            seen.add(name.lower())
        return headers

    @field_validator("payload_template")
    @classmethod
    def _check_payload_template(cls, template: str | None) -> str | None:
        if template is not None:
            from courier.delivery.template import validate_template
            from courier.exceptions import TemplateError

            try:
                validate_template(template)
            except TemplateError as e:
                raise ValueError(e.message) from e
        return template

    @model_validator(mode="after")
    def _check_invariants(self) -> WebhookRegistration:
        if self.total_deliveries != self.successful_deliveries + self.failed_deliveries:
            raise ValueError(
                "total_deliveries must equal successful_deliveries + failed_deliveries"
            )
        if self.status == WebhookStatus.DISABLED and self.is_active:
            raise ValueError("a DISABLED registration cannot be active")
        if (self.auth_header is None) != (self.auth_value is None):
            raise ValueError("auth_header and auth_value must be set together")
        if self.auth_header is not None and self.auth_value is not None:
            _check_header(self.auth_header, self.auth_value)
            if self.auth_header.lower() in {name.lower() for name in self.custom_headers}:
                raise ValueError(f"header {self.auth_header} is also set in custom_headers")
        if self.paused_from == WebhookStatus.PAUSED:
            raise ValueError("paused_from cannot be PAUSED")
        return self

    @property
    def success_rate(self) -> float | None:
        """Percentage of successful deliveries, None before the first one."""
        if self.total_deliveries == 0:
            return None
        return self.successful_deliveries / self.total_deliveries * 100

    @property
    def is_deliverable(self) -> bool:
        """Whether the router may send traffic to this registration."""
        return self.is_active and self.status in (WebhookStatus.ACTIVE, WebhookStatus.FAILING)

    def subscribes_to(self, tenant_id: str, event_type: EventType) -> bool:
        """Check if an event of this tenant and type should be routed here."""
        return (
            self.is_deliverable
            and self.tenant_id == tenant_id
            and self.event_type == event_type
        )


class TenantWebhookStats(BaseModel):
    """Aggregate registration and delivery counts for one tenant."""

    model_config = ConfigDict(extra="forbid")

    tenant_id: str
    total_webhooks: int = Field(default=0, ge=0)
    active_webhooks: int = Field(default=0, ge=0)
    failing_webhooks: int = Field(default=0, ge=0)
    paused_webhooks: int = Field(default=0, ge=0)
    disabled_webhooks: int = Field(default=0, ge=0)
    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)

    @property
    def success_rate(self) -> float | None:
        """Tenant-wide success percentage, None before the first delivery."""
        if self.total_deliveries == 0:
            return None
        return self.successful_deliveries / self.total_deliveries * 100

    @classmethod
    def summarize(
        cls, tenant_id: str, registrations: list[WebhookRegistration]
    ) -> TenantWebhookStats:
        """Aggregate stats over a tenant's registrations."""
        by_status = {status: 0 for status in WebhookStatus}
        for registration in registrations:
            by_status[registration.status] += 1
        return cls(
            tenant_id=tenant_id,
            total_webhooks=len(registrations),
            active_webhooks=sum(1 for r in registrations if r.is_active),
            failing_webhooks=by_status[WebhookStatus.FAILING],
            paused_webhooks=by_status[WebhookStatus.PAUSED],
            disabled_webhooks=by_status[WebhookStatus.DISABLED],
            total_deliveries=sum(r.total_deliveries for r in registrations),
            successful_deliveries=sum(r.successful_deliveries for r in registrations),
        )


__all__ = [
    "FAILING_THRESHOLD",
    "RESERVED_HEADERS",
    "HttpMethod",
    "TenantWebhookStats",
    "WebhookRegistration",
    "WebhookStatus",
]
