"""Courier: reliable outbound webhooks for domain events.

Turns internal domain events into signed HTTP deliveries to tenant
endpoints, with retries, per-endpoint failure accounting and automatic
circuit breaking.

Quick Start:
    from courier import DeliveryEngine, EventType, WebhookRegistration, generate_secret

    async with DeliveryEngine.create() as engine:
        await engine.register(
            WebhookRegistration(
                tenant_id="tenant_1",
                name="ERP sync",
                url="https://erp.example.com/hooks",
                event_type=EventType.INVOICE_STATUS_CHANGED,
                secret=generate_secret(),
            )
        )
        await engine.emit("tenant_1", EventType.INVOICE_STATUS_CHANGED, status="PAID")

Registration Status:
    - ACTIVE: Receiving deliveries
    - FAILING: Receiving deliveries, 3+ consecutive failures
    - PAUSED: Suspended by an operator
    - DISABLED: Circuit open after too many consecutive failures
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Delivery
from .delivery import (
    DeliveryExecutor,
    EventDispatcher,
    Ledger,
    RetryScheduler,
    generate_secret,
    sign_payload,
    verify_signature,
)

# Engine
from .engine import DeliveryEngine

# Exceptions
from .exceptions import (
    ConcurrencyError,
    ConfigurationError,
    CourierError,
    InvalidTransitionError,
    NotFoundError,
    SigningError,
    StorageError,
    TemplateError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryOutcome,
    DomainEvent,
    EntityRef,
    EventType,
    HttpMethod,
    TenantWebhookStats,
    WebhookRegistration,
    WebhookStatus,
)

# Storage
from .storage import InMemoryRegistrationStore, QdrantRegistrationStore, RegistrationStore

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Engine
    "DeliveryEngine",
    # Delivery
    "DeliveryExecutor",
    "EventDispatcher",
    "Ledger",
    "RetryScheduler",
    "generate_secret",
    "sign_payload",
    "verify_signature",
    # Exceptions
    "CourierError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConcurrencyError",
    "ConfigurationError",
    "SigningError",
    "TemplateError",
    "InvalidTransitionError",
    # Logging
    "configure_logging",
    "get_logger",
    "delivery_context",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "DeliveryOutcome",
    "DomainEvent",
    "EntityRef",
    "EventType",
    "HttpMethod",
    "TenantWebhookStats",
    "WebhookRegistration",
    "WebhookStatus",
    # Storage
    "InMemoryRegistrationStore",
    "QdrantRegistrationStore",
    "RegistrationStore",
]
