"""Restricted payload templates.

A registration may shape its request body with a template containing
``{{ placeholder }}`` markers. Only the placeholders in PLACEHOLDERS exist,
and every substituted value is JSON-encoded, so a template such as

    {"text": "Contract update", "event": {{ event_type }}, "data": {{ data }}}

renders to valid JSON whatever the event contains. There is no expression
syntax, attribute access or filter support.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from pydantic_core import PydanticSerializationError, to_json

from courier.exceptions import TemplateError

if TYPE_CHECKING:
    from courier.models import DomainEvent, WebhookRegistration

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

PLACEHOLDERS = frozenset(
    {
        "event_id",
        "event_type",
        "event_category",
        "tenant_id",
        "timestamp",
        "entity_type",
        "entity_id",
        "registration_id",
        "data",
        "envelope",
    }
)


def validate_template(template: str) -> frozenset[str]:
    """Check a template against the placeholder grammar.

    Args:
        template: Template text.

    Returns:
        The placeholders used by the template.

    Raises:
        TemplateError: On unknown or malformed placeholders.
    """
    used = frozenset(PLACEHOLDER_PATTERN.findall(template))
    unknown = used - PLACEHOLDERS
    if unknown:
        raise TemplateError(f"Unknown template placeholders: {', '.join(sorted(unknown))}")
    stripped = PLACEHOLDER_PATTERN.sub("", template)
    if "{{" in stripped or "}}" in stripped:
        raise TemplateError("Malformed template placeholder")
    return used


def template_values(event: DomainEvent, registration_id: str) -> dict[str, Any]:
    """Values available to templates for one event."""
    return {
        "event_id": event.id,
        "event_type": event.event_type.value,
        "event_category": event.event_type.category,
        "tenant_id": event.tenant_id,
        "timestamp": event.occurred_at.isoformat(),
        "entity_type": event.entity.entity_type if event.entity else None,
        "entity_id": event.entity.entity_id if event.entity else None,
        "registration_id": registration_id,
        "data": event.data,
        "envelope": event.envelope(),
    }


def _encode(value: Any) -> bytes:
    try:
        return to_json(value)
    except PydanticSerializationError as e:
        raise TemplateError(f"Event payload is not JSON serializable: {e}") from e


def render_template(template: str, event: DomainEvent, registration_id: str) -> str:
    """Substitute placeholders with JSON-encoded event values.

    Raises:
        TemplateError: If the template is invalid or a value cannot be encoded.
    """
    validate_template(template)
    values = template_values(event, registration_id)
    return PLACEHOLDER_PATTERN.sub(
        lambda match: _encode(values[match.group(1)]).decode("utf-8"),
        template,
    )


def render_body(registration: WebhookRegistration, event: DomainEvent) -> bytes:
    """Render the request body for a registration.

    Uses the registration's template if it has one, otherwise the event's
    JSON envelope.
    """
    if registration.payload_template is None:
        return _encode(event.envelope())
    return render_template(registration.payload_template, event, registration.id).encode("utf-8")
