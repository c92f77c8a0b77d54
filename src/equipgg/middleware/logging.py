"""Structured logging for the ledger.

The reward engines log through ``logging.getLogger(__name__)``. Their records
go through structlog's ``ProcessorFormatter`` so they render exactly like
structlog events and carry the same request context (``request_id``,
``user_id``) bound by :class:`RequestContextMiddleware`.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from equipgg.config import Settings

SERVICE_NAME = "equipgg-ledger"


def service_context(environment: str) -> structlog.types.Processor:
    """Stamp every event with the service name and deployment environment."""

    def add_service_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service_context


def setup_logging(settings: Settings) -> None:
    """Configure structlog and route stdlib records through the same pipeline."""
    json_output = settings.log_format == "json"
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        service_context(settings.environment),
    ]

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final: list[structlog.types.Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_output:
        # ConsoleRenderer pretty-prints exc_info itself
        final.append(structlog.processors.format_exc_info)
    final.append(renderer)

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(foreign_pre_chain=shared, processors=final))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # SQL echo only when debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)
