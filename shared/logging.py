"""
Structured logging for the gateway service and its client.

Each event is one JSON line. Processors attach the service name, the active
OpenTelemetry span, and the request, caller and tool being served. Fields
that carry credentials (nonces, session tokens, API keys) are masked before
rendering.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from opentelemetry import trace


REDACTED = "***"

SENSITIVE_FIELDS = frozenset({
    "api_key",
    "authorization",
    "cookie",
    "nonce",
    "password",
    "secret",
    "token",
})

_correlation_vars: Dict[str, ContextVar] = {
    "request_id": ContextVar("request_id", default=None),
    "user_id": ContextVar("user_id", default=None),
    "tool": ContextVar("tool", default=None),
}

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info", *, json_output: bool = True) -> None:
    """Configure structlog and the stdlib root handler for a service."""
    global _service_name
    _service_name = service_name

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            add_service_name,
            add_trace_context,
            add_correlation_context,
            redact_credentials,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_name(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the configured service, else the logger name prefix."""
    if _service_name:
        event_dict.setdefault("service", _service_name)
    else:
        prefix, _, rest = event_dict.get("logger", "").partition(".")
        if rest:
            event_dict.setdefault("service", prefix)
    return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        event_dict["span_id"] = f"{span_context.span_id:016x}"
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for field, var in _correlation_vars.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(field, value)
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential-bearing fields."""
    for field in SENSITIVE_FIELDS.intersection(event_dict):
        if event_dict[field]:
            event_dict[field] = REDACTED
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context, generating one when absent."""
    request_id = request_id or str(uuid.uuid4())
    _correlation_vars["request_id"].set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None) -> None:
    if user_id:
        _correlation_vars["user_id"].set(user_id)


def set_tool_context(tool_name: str) -> None:
    """Attach the tool being executed to subsequent events."""
    _correlation_vars["tool"].set(tool_name)


def clear_context() -> None:
    for var in _correlation_vars.values():
        var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger; names are "<service>.<component>"."""
    return structlog.get_logger(name)
