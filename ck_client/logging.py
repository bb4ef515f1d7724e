"""Structured logging configuration for ConceptKernel client applications.

Configures structlog for JSON output in production, pretty output in development.
Library modules log through the standard ``logging`` module; this only has to
be called by applications (the ``ck`` CLI does it for you).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

# Bound by configure_logging and restored by clear_context
_service_name: str | None = None


def configure_logging(
    level: str = "INFO",
    json_output: bool | None = None,
    service_name: str = "ck-client",
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Force JSON output. If None, auto-detect based on environment
        service_name: Service name to include in all log entries
    """
    # Auto-detect JSON mode: use JSON if not in a TTY (production/container)
    if json_output is None:
        json_output = not sys.stderr.isatty() or os.getenv("CK_LOG_JSON") == "1"

    # Shared processors for all loggers
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route the library's stdlib loggers through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    global _service_name
    _service_name = service_name
    structlog.contextvars.bind_contextvars(service=service_name)

    # Set levels for noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("nats").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind context variables for all subsequent log entries in this context.

    Example:
        bind_context(gateway_url="http://localhost:56000", kernel="UI.Bakery")
        logger.info("Emitting")  # Includes gateway_url and kernel
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables except the configured service name."""
    structlog.contextvars.clear_contextvars()
    if _service_name is not None:
        structlog.contextvars.bind_contextvars(service=_service_name)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
