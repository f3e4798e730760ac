"""Tests for payload template validation and rendering."""

from __future__ import annotations

import json

import pytest

from courier.delivery.template import (
    render_body,
    render_template,
    template_values,
    validate_template,
)
from courier.exceptions import TemplateError
from courier.models import DomainEvent, EventType


class TestValidateTemplate:
    """Tests for validate_template."""

    def test_returns_used_placeholders(self):
        used = validate_template('{"id": {{ event_id }}, "t": {{tenant_id}}}')
        assert used == {"event_id", "tenant_id"}

    def test_no_placeholders(self):
        assert validate_template('{"static": true}') == frozenset()

    def test_unknown_placeholder(self):
        """Unknown names should be rejected with their names listed."""
        with pytest.raises(TemplateError, match="secret"):
            validate_template("{{ secret }}")

    @pytest.mark.parametrize("template", ["{{ event_id", "event_id }}", "{{ event-id }}"])
    def test_malformed(self, template):
        """Unbalanced or invalid placeholders should be rejected."""
        with pytest.raises(TemplateError):
            validate_template(template)


class TestRenderTemplate:
    """Tests for template rendering."""

    def test_values_are_json_encoded(self, sample_event):
        """Strings are quoted and objects serialized, giving valid JSON."""
        template = (
            '{"id": {{ event_id }}, "type": {{ event_type }}, '
            '"entity": {{ entity_id }}, "payload": {{ data }}, "hook": {{ registration_id }}}'
        )
        rendered = json.loads(render_template(template, sample_event, "whk_1"))
        assert rendered == {
            "id": "evt_test456",
            "type": "CONTRACT_UPDATED",
            "entity": "ct_42",
            "payload": {"value": 125000, "status": "ACTIVE"},
            "hook": "whk_1",
        }

    def test_missing_entity_renders_null(self):
        event = DomainEvent(tenant_id="t1", event_type=EventType.REPORT_GENERATED)
        rendered = json.loads(render_template('{"e": {{ entity_type }}}', event, "whk_1"))
        assert rendered == {"e": None}

    def test_envelope_placeholder(self, sample_event):
        rendered = json.loads(render_template('{"wrapped": {{ envelope }}}', sample_event, "w"))
        assert rendered["wrapped"]["event_id"] == "evt_test456"

    def test_values_cover_all_placeholders(self, sample_event):
        """Every allowed placeholder should have a value."""
        from courier.delivery.template import PLACEHOLDERS

        assert set(template_values(sample_event, "whk_1")) == PLACEHOLDERS

    def test_unserializable_data(self):
        """Values that cannot be encoded are template errors."""
        event = DomainEvent(
            tenant_id="t1",
            event_type=EventType.REPORT_GENERATED,
            data={"handle": object()},
        )
        with pytest.raises(TemplateError, match="serializable"):
            render_template("{{ data }}", event, "whk_1")


class TestRenderBody:
    """Tests for render_body."""

    def test_envelope_without_template(self, make_registration, sample_event):
        """Registrations without a template receive the event envelope."""
        body = render_body(make_registration(), sample_event)
        assert json.loads(body) == sample_event.envelope()

    def test_uses_template(self, make_registration, sample_event):
        registration = make_registration(payload_template='{"contract": {{ entity_id }}}')
        assert json.loads(render_body(registration, sample_event)) == {"contract": "ct_42"}
