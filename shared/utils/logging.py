"""Structured logging for the data-access client.

A request ID lives in a context variable so every log line written while a
call is in flight carries it, and the HTTP client forwards the same value
upstream in the `X-Request-ID` header.
"""

import contextvars
import logging
import sys
import uuid
from typing import Any

import structlog

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


def get_request_id() -> str:
    """Return the request ID to send as X-Request-ID, or "" when unset."""
    return _request_id.get()


def set_request_id(request_id: str | None = None) -> str:
    """Start tagging outbound calls and log lines with a request ID.

    Generates a UUID4 when none is given and returns the ID in use.
    """
    rid = request_id or str(uuid.uuid4())
    _request_id.set(rid)
    return rid


def clear_request_id() -> None:
    """Stop sending a request ID on later calls from this context."""
    _request_id.set("")


def add_request_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor copying the outbound request ID into the event."""
    request_id = get_request_id()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def configure_logging(
    client_name: str,
    log_level: str = "INFO",
    json_format: bool = True,
) -> None:
    """Configure structured logging for the data-access client.

    Args:
        client_name: Name bound into every log line
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to output JSON logs (False renders for a console)
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_id,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.contextvars.bind_contextvars(client=client_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
