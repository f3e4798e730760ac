"""Tests for Courier structured logging."""

import structlog

from courier.logging import (
    bind_context,
    clear_context,
    configure_logging,
    delivery_context,
    get_logger,
    unbind_context,
)


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        """Should configure with INFO level and JSON format by default."""
        configure_logging()
        get_logger("test").info("delivery engine started")

    def test_configure_with_text_format(self):
        """Should accept text format for development."""
        configure_logging(level="DEBUG", format="text")
        get_logger("test").debug("text format message")

    def test_unknown_level_falls_back(self):
        """Unknown level names should not raise."""
        configure_logging(level="chatty")
        get_logger("test").info("still logging")

    def test_configure_multiple_times(self):
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        get_logger("test").info("after reconfigure")


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context(self):
        """Bound values should be visible to every logger."""
        bind_context(registration_id="whk_123", event_id="evt_abc")
        assert structlog.contextvars.get_contextvars() == {
            "registration_id": "whk_123",
            "event_id": "evt_abc",
        }

    def test_clear_context(self):
        bind_context(registration_id="whk_123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_unbind_specific_context(self):
        """Only the named keys should be removed."""
        bind_context(registration_id="whk_123", attempt=2)
        unbind_context("attempt")
        assert structlog.contextvars.get_contextvars() == {"registration_id": "whk_123"}

    def test_delivery_context_scoped(self):
        """delivery_context should bind ids inside the block only."""
        with delivery_context("whk_123", "evt_abc", event_type="CONTRACT_UPDATED"):
            assert structlog.contextvars.get_contextvars() == {
                "registration_id": "whk_123",
                "event_id": "evt_abc",
                "event_type": "CONTRACT_UPDATED",
            }
        assert structlog.contextvars.get_contextvars() == {}

    def test_delivery_context_restores_outer_values(self):
        bind_context(registration_id="whk_outer")
        with delivery_context("whk_inner", "evt_1"):
            assert structlog.contextvars.get_contextvars()["registration_id"] == "whk_inner"
        assert structlog.contextvars.get_contextvars() == {"registration_id": "whk_outer"}


class TestLoggerUsage:
    """Tests for logger usage patterns."""

    def test_log_with_kwargs(self):
        configure_logging()
        get_logger("test").info(
            "Webhook delivered",
            registration_id="whk_123",
            status_code=200,
            duration_ms=150,
        )

    def test_log_with_exception(self):
        configure_logging()
        logger = get_logger("test")
        try:
            raise ValueError("test error")
        except ValueError:
            logger.exception("Delivery task failed")
