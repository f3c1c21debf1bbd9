"""Typed errors raised by Tasky services.

Every error carries the HTTP status and the machine-readable code the gateway
uses when rendering it. Services raise these; they never build responses.
"""

from typing import Any, List, Optional


class TaskyError(Exception):
    """Base class for all errors surfaced to API clients."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, details: Optional[List[dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.message,
            "status": self.status_code,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(TaskyError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"
    default_message = "Validation failed"


class AuthenticationError(TaskyError):
    """Credentials were supplied but did not match."""

    status_code = 401
    code = "authentication_failed"
    default_message = "Invalid credentials"


class UnauthenticatedError(TaskyError):
    """Bearer token missing, malformed, expired or not bound to a user."""

    status_code = 401
    code = "unauthenticated"
    default_message = "Not authenticated"


class NotFoundError(TaskyError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class ConflictError(TaskyError):
    """A unique key (e.g. the user email) is already taken."""

    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class RateLimitedError(TaskyError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests from this IP, please try again later."


class DeliveryError(TaskyError):
    """The mail transport failed to hand off a message."""

    status_code = 500
    code = "delivery_failed"
    default_message = "Failed to send email"


class InternalError(TaskyError):
    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ConflictError",
    "DeliveryError",
    "InternalError",
    "NotFoundError",
    "RateLimitedError",
    "TaskyError",
    "UnauthenticatedError",
    "ValidationError",
]
