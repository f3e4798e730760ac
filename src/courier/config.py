"""Configuration management for Courier."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_STORE_BACKEND=qdrant
        COURIER_QDRANT_URL=http://localhost:6333
        COURIER_MAX_CONCURRENT_DELIVERIES=50
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Registration store
    store_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Registration store: 'memory' (process-local) or 'qdrant'",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="courier",
        description="Prefix for Qdrant collection names",
    )

    # Delivery
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum HTTP delivery attempts in flight at once",
    )
    max_retry_delay_seconds: float = Field(
        default=3600.0,
        ge=1.0,
        description=(
            "Upper bound for a single backoff wait. The exponential delay "
            "plus jitter is clamped to this value."
        ),
    )
    signature_tolerance_seconds: int = Field(
        default=300,
        ge=1,
        description="Replay window receivers should accept for X-Webhook-Timestamp",
    )
    user_agent: str = Field(
        default="Courier-Webhooks/0.1",
        description="User-Agent header sent with every delivery",
    )
    ledger_conflict_retries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Attempts to re-apply an outcome after an optimistic version conflict",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def _check_production_store(self) -> "Settings":
        """Warn when production runs on the process-local store."""
        if self.env == "production" and self.store_backend == "memory":
            logger.warning(
                "COURIER_STORE_BACKEND=memory in production: registration "
                "state and delivery statistics will not survive a restart"
            )
        return self


# Global settings instance
settings = Settings()
