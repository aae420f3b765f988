"""
Structured logging configuration with structlog.

Log records carry the request correlation ID and, inside a pipeline run,
the document being processed.
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
document_id_var: ContextVar[str] = ContextVar("document_id", default="")


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Processor that attaches the correlation and document IDs from context."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    document_id = document_id_var.get()
    if document_id and "document_id" not in event_dict:
        event_dict["document_id"] = document_id
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    include_timestamp: bool = True,
) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, colored console output otherwise
        include_timestamp: Whether to stamp events with an ISO timestamp
    """
    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
    ]
    if include_timestamp:
        shared_processors.append(structlog.processors.TimeStamper(fmt="iso"))
    shared_processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically called with ``__name__``."""
    return structlog.get_logger(name or "docgraph")


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current request context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    return correlation_id_var.get()


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def set_document_context(document_id: str) -> None:
    """Tag subsequent log events in this task with a document ID."""
    document_id_var.set(document_id)


configure_logging(log_level="INFO", json_output=True)
