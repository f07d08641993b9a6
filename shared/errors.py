"""
Shared error handling for the MSME entitlements platform.
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


class EntitlementsException(Exception):
    """Base exception for entitlements services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
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


class AuthenticationError(EntitlementsException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class FeatureAccessDenied(EntitlementsException):
    """Raised by gating adapters when an access decision denies a feature."""

    status_code = 403

    def __init__(self, feature_key: str, reason: str, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.feature_key = feature_key
        self.reason = reason
        payload = {"feature_key": feature_key, "reason": reason}
        payload.update(details or {})
        super().__init__(
            "FEATURE_ACCESS_DENIED",
            message or f'Feature "{feature_key}" not enabled or access denied',
            payload
        )


class ValidationError(EntitlementsException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class UnknownRoleError(ValidationError):
    """A role string that does not map onto the canonical role set."""

    def __init__(self, role: Any):
        super().__init__(f"Unknown role: {role!r}", {"role": str(role)})
        self.role = role


class CatalogValidationError(EntitlementsException):
    """Malformed feature catalog document, raised at load time only."""

    def __init__(self, message: str = "Feature catalog is invalid", errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__("CATALOG_VALIDATION_ERROR", message, {"errors": self.errors})


class ServiceError(EntitlementsException):
    """Service-related errors."""

    status_code = 503

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
