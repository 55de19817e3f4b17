"""
Shared error handling for the Sentinel gateway.

Every client-facing failure is an ``AccessLayerException`` subclass carrying
the HTTP status it maps to. Responses are flat ``{"error": message}`` objects.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str


class AccessLayerException(Exception):
    """Base exception for Sentinel services."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Convert to the flat JSON error body."""
        body = ErrorResponse(error=self.message).model_dump()
        body.update(self.details)
        return body


class ConfigurationError(AccessLayerException):
    """Invalid service or agent configuration. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class AuthenticationError(AccessLayerException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(AccessLayerException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Unknown resource errors."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class PayloadTooLargeError(AccessLayerException):
    """Request body exceeds the configured size cap."""

    status_code = 413

    def __init__(self, message: str = "Request body too large", details: Optional[Dict[str, Any]] = None):
        super().__init__("PAYLOAD_TOO_LARGE", message, details)


class RateLimitError(AccessLayerException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)


class SecretMissingError(AccessLayerException):
    """A service secret is not present in the environment."""

    status_code = 500

    def __init__(self, env_name: str):
        self.env_name = env_name
        super().__init__(
            "SECRET_MISSING",
            f'Server misconfigured: env var "{env_name}" is not set',
        )


class UpstreamTransportError(AccessLayerException):
    """The upstream call failed before a response was received."""

    status_code = 502

    def __init__(self, description: str):
        super().__init__("UPSTREAM_TRANSPORT_ERROR", f"Upstream request failed: {description}")


class UpstreamTimeoutError(AccessLayerException):
    """The upstream call exceeded its deadline."""

    status_code = 504

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__("UPSTREAM_TIMEOUT", f"Upstream request timed out ({timeout_ms}ms)")
