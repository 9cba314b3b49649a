"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- HTTP status mapping for API views

Exception Hierarchy:
    BaseApplicationError (base)
    ├── AuthenticationError - Missing or invalid credentials (401)
    ├── AuthorizationError - Caller may not act on the resource (403)
    ├── ValidationError - Input validation failures (400)
    ├── StateConflictError - Resource state forbids the operation (400)
    ├── NotFoundError - Resource not found (404)
    ├── ExternalServiceError - Third-party service failures (502)
    └── PersistenceError - Store writes that could not be completed (500)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Invalid reason category")

    # Raise with error code for client handling
    raise StateConflictError("Order already cancelled", error_code="ALREADY_CANCELLED")

    # Convert to response in a view
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Provides a consistent interface for error handling across the application.
    All custom exceptions should inherit from this class.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        http_status: Status code used when the error is rendered by a view

    Example:
        try:
            order = OrderService.get_order(order_id)
        except NotFoundError as e:
            logger.warning(f"Order not found: {e.error_code}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Order not found",
                "error_code": "ORDER_NOT_FOUND",
                "details": {"order_id": "..."}
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
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class AuthenticationError(BaseApplicationError):
    """
    Raised when the caller could not be identified.

    Note:
        DRF's IsAuthenticated permission covers most API endpoints.
        Use this in service code invoked outside the request cycle.
    """

    default_error_code: str = "AUTHENTICATION_REQUIRED"
    http_status: int = 401


class AuthorizationError(BaseApplicationError):
    """
    Raised when the caller lacks permission for an operation.

    Use for:
    - Acting on another user's order or refund
    - Approving a cancellation without being the restaurant owner or an admin
    - Role-based access control violations

    Example:
        if order.user_id != requester.id:
            raise AuthorizationError(
                "You can only cancel your own orders",
                error_code="NOT_ORDER_OWNER",
                details={"order_id": str(order.id)},
            )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Unknown or disallowed reason categories
    - Missing required fields (e.g. a rejection reason)
    - Out-of-range numeric input

    Example:
        raise ValidationError(
            "Rejection reason is required",
            error_code="REJECTION_REASON_REQUIRED",
        )

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class StateConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Cancelling an order that is already cancelled
    - A second cancellation while one is still open
    - Invalid state transitions
    - Concurrent modification conflicts

    Example:
        if order.status == OrderStatus.CANCELLED:
            raise StateConflictError(
                "Order is already cancelled",
                error_code="ALREADY_CANCELLED",
                details={"order_id": str(order.id)},
            )

    Note:
        The public API renders these as 400 with a stable error_code.
    """

    default_error_code: str = "STATE_CONFLICT"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        order = Order.objects.filter(id=order_id).first()
        if not order:
            raise NotFoundError(
                f"Order {order_id} not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Use for:
    - Payment gateway failures
    - Network timeouts
    - Unexpected external service responses

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502


class PersistenceError(BaseApplicationError):
    """
    Raised when a write to the store could not be completed.

    Use for:
    - Compensating writes that failed and left records disagreeing
    - Failed status updates that callers cannot recover from

    Note:
        A PersistenceError raised during compensation means manual
        reconciliation is required. Log it at CRITICAL before raising.
    """

    default_error_code: str = "PERSISTENCE_ERROR"
    http_status: int = 500
