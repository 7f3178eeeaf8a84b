"""
Shared error handling for the Assistant Bridge.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class BridgeException(Exception):
    """Base exception for Assistant Bridge components."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(BridgeException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(BridgeException):
    """Missing or invalid configuration. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ExternalServiceError(BridgeException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class GatewayError(BridgeException):
    """Base class for errors raised by the API gateway client."""


class UnknownFunction(GatewayError):
    """No endpoint mapping is registered for the logical function name."""

    status_code = 404

    def __init__(self, function_name: str):
        self.function_name = function_name
        super().__init__(
            "UNKNOWN_FUNCTION",
            f"No endpoint mapping registered for function '{function_name}'",
            {"function_name": function_name}
        )


class MissingPathParameter(GatewayError):
    """A path placeholder could not be filled from the call arguments."""

    status_code = 400

    def __init__(self, function_name: str, parameter: str, path_template: str):
        self.function_name = function_name
        self.parameter = parameter
        super().__init__(
            "MISSING_PATH_PARAMETER",
            f"Missing path parameter '{parameter}' for function '{function_name}'",
            {"function_name": function_name, "parameter": parameter, "path_template": path_template}
        )


class GatewayRequestRejected(GatewayError):
    """The backend rejected the request for a non-transient reason (4xx and friends)."""

    status_code = 400

    def __init__(
        self,
        function_name: str,
        status_code: Optional[int] = None,
        body: Any = None,
        reason: Optional[str] = None,
    ):
        self.function_name = function_name
        self.response_status = status_code
        self.body = body
        message = f"Backend rejected '{function_name}'"
        if status_code is not None:
            message += f" with status {status_code}"
        if reason:
            message += f": {reason}"
        super().__init__(
            "GATEWAY_REQUEST_REJECTED",
            message,
            {"function_name": function_name, "status_code": status_code, "body": body, "reason": reason}
        )


class GatewayUnavailable(GatewayError):
    """All attempts failed with transient errors (timeouts, connection errors, 5xx)."""

    status_code = 503

    def __init__(self, function_name: str, attempts: int, last_error: Optional[BaseException] = None):
        self.function_name = function_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            "GATEWAY_UNAVAILABLE",
            f"Backend unavailable for '{function_name}' after {attempts} attempt(s)",
            {"function_name": function_name, "attempts": attempts, "last_error": describe_error(last_error)}
        )


def describe_error(error: Optional[BaseException]) -> Optional[str]:
    """Message of ``error``, or its type name when the message is empty."""
    if error is None:
        return None
    return str(error) or type(error).__name__
