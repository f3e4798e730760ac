"""Structured logging for Courier.

Courier modules log either through structlog (``get_logger``) or the
standard library (``logging.getLogger(__name__)``). configure_logging
renders both through the same structlog processor chain, so a record
from the executor carries the registration and event ids that the
dispatcher bound for the current delivery task.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False

# Marks the handler installed by configure_logging so reconfiguring replaces it
_HANDLER_NAME = "courier"


def _renderer(format: str) -> Processor:
    if format.lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for Courier.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for a console renderer.

    Example:
        ```python
        from courier.logging import configure_logging

        configure_logging(level="DEBUG", format="text")
        ```
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(format),
            ],
        )
    )

    courier_logger = logging.getLogger("courier")
    for existing in list(courier_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            courier_logger.removeHandler(existing)
    courier_logger.addHandler(handler)
    courier_logger.setLevel(log_level)

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind values to every log record emitted from the current context.

    Context lives in contextvars, so each asyncio task delivering a
    webhook carries its own values.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def delivery_context(registration_id: str, event_id: str, **extra: object) -> Iterator[None]:
    """Bind delivery identifiers for the duration of a block.

    Example:
        ```python
        with delivery_context("whk_123", "evt_abc", event_type="CONTRACT_UPDATED"):
            logger.info("Attempting delivery")  # Includes both ids
        ```
    """
    values = {"registration_id": registration_id, "event_id": event_id, **extra}
    with structlog.contextvars.bound_contextvars(**values):
        yield
