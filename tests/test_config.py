"""Unit tests for Courier configuration."""

import logging
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from courier.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()
        assert settings.store_backend == "memory"
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.collection_prefix == "courier"
        assert settings.max_concurrent_deliveries == 10
        assert settings.max_retry_delay_seconds == 3600.0
        assert settings.signature_tolerance_seconds == 300
        assert settings.user_agent.startswith("Courier-Webhooks/")
        assert settings.log_format == "json"

    def test_env_override(self):
        """Settings should read COURIER_ prefixed variables."""
        env = {
            "COURIER_STORE_BACKEND": "qdrant",
            "COURIER_MAX_CONCURRENT_DELIVERIES": "25",
            "COURIER_MAX_RETRY_DELAY_SECONDS": "600",
        }
        with patch.dict(os.environ, env):
            settings = Settings()
        assert settings.store_backend == "qdrant"
        assert settings.max_concurrent_deliveries == 25
        assert settings.max_retry_delay_seconds == 600.0

    def test_invalid_backend(self):
        with pytest.raises(ValidationError):
            Settings(store_backend="redis")

    @pytest.mark.parametrize("value", [0, 1001])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValidationError):
            Settings(max_concurrent_deliveries=value)

    def test_production_memory_store_warns(self, caplog):
        """Running production on the process-local store should log a warning."""
        with caplog.at_level(logging.WARNING, logger="courier.config"):
            Settings(env="production", store_backend="memory")
        assert "COURIER_STORE_BACKEND=memory" in caplog.text

    def test_production_qdrant_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING, logger="courier.config"):
            Settings(env="production", store_backend="qdrant")
        assert caplog.text == ""
