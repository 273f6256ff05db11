"""
Shared logging configuration for the Move ABI Access Layer.

Every event carries the service name, the HTTP request id when one is
active, and the fetch target (``network:package::module``) while a module is
being loaded, so retry and transport warnings can be traced to what was
being fetched.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, Optional, TextIO
from contextvars import ContextVar, Token

# Context variables for request and fetch correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
fetch_target_var: ContextVar[Optional[str]] = ContextVar('fetch_target', default=None)

_service_name: Optional[str] = None


def configure_logging(service_name: str,
                      log_level: str = "info",
                      json_logs: bool = True,
                      stream: TextIO = sys.stdout) -> None:
    """Configure structured logging for a service or script.

    Scripts that print results on stdout should pass ``stream=sys.stderr``.
    """
    global _service_name
    _service_name = service_name

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=level,
        force=True,
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    if _service_name:
        event_dict.setdefault("service", _service_name)
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request id and fetch target to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    fetch_target = fetch_target_var.get()
    if fetch_target:
        event_dict.setdefault("fetch_target", fetch_target)

    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def bind_fetch_target(target: str) -> Token:
    """Mark the current task as loading ``target``; pass the token to ``reset_fetch_target``."""
    return fetch_target_var.set(target)


def reset_fetch_target(token: Token) -> None:
    fetch_target_var.reset(token)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    fetch_target_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
