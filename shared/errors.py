"""
Shared error handling for the Ability Tool Gateway.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayError(Exception):
    """Base exception for gateway services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class GatewayDisabledError(GatewayError):
    """The gateway is switched off; both discovery and execution look absent."""

    status_code = 404

    def __init__(self, message: str = "The tool gateway is not enabled."):
        super().__init__("GATEWAY_DISABLED", message)


class AuthenticationRequiredError(GatewayError):
    """Discovery requires a logged-in caller."""

    status_code = 401

    def __init__(self, message: str = "Authentication required."):
        super().__init__("AUTHENTICATION_REQUIRED", message)


class RateLimitError(GatewayError):
    """Rate limiting errors."""

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests. Please slow down.",
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        super().__init__("RATE_LIMITED", message, details, headers=headers)


class ToolNotFoundError(GatewayError):
    """Unknown, hidden and non-allow-listed tools all map here."""

    status_code = 404

    def __init__(self, message: str = "Tool not found."):
        super().__init__("TOOL_NOT_FOUND", message)


class PermissionDeniedError(GatewayError):
    """The ability's permission callback refused the caller."""

    status_code = 403

    def __init__(self, message: str = "You do not have permission to use this tool."):
        super().__init__("PERMISSION_DENIED", message)


class InvalidNonceError(GatewayError):
    """Missing or invalid CSRF token."""

    status_code = 403

    def __init__(self, message: str = "Invalid or expired security token."):
        super().__init__("INVALID_NONCE", message)


class ExecutionVetoedError(GatewayError):
    """Raised (or returned) by an execution guard hook to block a call."""

    status_code = 403

    def __init__(self, code: str = "EXECUTION_BLOCKED", message: str = "Execution was blocked."):
        super().__init__(code, message)


class PayloadTooLargeError(GatewayError):
    """Request body exceeds the configured ceiling."""

    status_code = 400

    def __init__(self, max_bytes: int):
        super().__init__(
            "PAYLOAD_TOO_LARGE",
            "Request payload exceeds the maximum allowed size.",
            {"max_bytes": max_bytes},
        )


class InvalidInputError(GatewayError):
    """Execution body is not a JSON object."""

    status_code = 400

    def __init__(self, message: str = "Request body must be a JSON object."):
        super().__init__("INVALID_INPUT", message)


class AbilityError(GatewayError):
    """Structured error raised by an ability's execute callback.

    The code, message and status are passed through to the caller unchanged.
    """

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details, status_code=status_code)


class ExecutionFaultError(GatewayError):
    """Unexpected failure inside an ability; internal details are never exposed."""

    status_code = 500

    def __init__(self, message: str = "Tool execution failed."):
        super().__init__("EXECUTION_ERROR", message)
