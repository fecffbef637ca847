"""
Base exception classes for application-wide error handling.

Every domain failure that can cross the HTTP boundary is a subclass of
BaseApplicationError. Each class carries:
- a machine-readable default error code (stable reason for clients)
- the HTTP status the API layer answers with

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ConfigurationError - Required secret or setting missing (500)
    ├── AuthenticationError - Caller identity could not be established (401)
    ├── ValidationError - Malformed or incomplete input (400)
    ├── NotFoundError - Resource not found (404)
    ├── PermissionDeniedError - Authorization failures (403)
    └── ExternalServiceError - Third-party service failures (502)

Usage:
    from core.exceptions import ValidationError

    raise ValidationError("Price ID is required", error_code="PRICE_REQUIRED")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    core.exception_handler.api_exception_handler renders these for DRF views,
    so views normally just let them propagate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, etc.)
        http_status: Status code the API layer responds with
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Coupon has expired",
                "error_code": "COUPON_EXPIRED",
                "details": {"code": "SPRING24"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ConfigurationError(BaseApplicationError):
    """
    Raised when a required secret or setting is not configured.

    Detected at the point of use rather than at import time, so a process
    missing e.g. the webhook secret can still serve unrelated endpoints.
    Never retried internally.
    """

    default_error_code: str = "CONFIGURATION_ERROR"
    http_status: int = 500


class AuthenticationError(BaseApplicationError):
    """
    Raised when the caller's identity cannot be established.

    For bearer-token API views DRF raises NotAuthenticated itself; this class
    covers non-DRF entry points such as signed webhook deliveries.
    """

    default_error_code: str = "AUTHENTICATION_FAILED"
    http_status: int = 401


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    Example:
        raise ValidationError(
            "Validation failed",
            details={"priceId": ["This field is required."]},
        )

    Note:
        For request body validation, use DRF serializers.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected.
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """Raised when a user lacks permission for an operation."""

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
