"""
Payment-specific exceptions for refund operations.

This module provides a hierarchy of exceptions for refund operations,
covering payment gateway errors and concurrency control errors.

Exception Hierarchy:
    ExternalGatewayError (base for gateway failures, inherits ExternalServiceError)
    ├── RetryableGatewayError - Transient failure, a later attempt may succeed
    │   ├── GatewayTimeoutError - No response within the configured timeout
    │   └── GatewayRateLimitError - Gateway rate limited the request
    ├── NonRetryableGatewayError - Permanent failure (validation, auth)
    └── AlreadySettledGatewayError - Refund already done at the gateway

    StaleRecordError - Optimistic locking conflict (inherits StateConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits StateConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits StateConflictError)

Usage:
    from payments.exceptions import (
        NonRetryableGatewayError,
        RetryableGatewayError,
        LockAcquisitionError,
    )

    # In a gateway client
    except stripe.RateLimitError as e:
        raise GatewayRateLimitError(str(e), gateway_code="rate_limit") from e

    # Distributed lock timeout
    raise LockAcquisitionError(
        f"Could not acquire lock for cancellation:order:123 within 10s",
        details={"key": "cancellation:order:123", "timeout": 10}
    )

Note:
    Gateway errors never reach the cancellation request. The gateway
    client's refund() turns them into a GatewayRefundResult and the
    RefundService records them on the Refund row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ExternalServiceError, StateConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Gateway Exceptions
# =============================================================================


class ExternalGatewayError(ExternalServiceError):
    """
    Base exception for payment gateway failures.

    Provides common attributes for gateway error handling:
    - gateway_code: The gateway's own error code
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with the same idempotency key
    - False: Permanent error, do not retry

    Example:
        try:
            client.request_refund(request)
        except ExternalGatewayError as e:
            refund.fail(str(e), e.gateway_code, e.is_retryable)
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry)
# -----------------------------------------------------------------------------


class RetryableGatewayError(ExternalGatewayError):
    """
    Transient gateway failure.

    This covers:
    - Network connectivity issues
    - Gateway server errors (5xx)
    - Unknown errors

    IMPORTANT: The refund may have succeeded on the gateway's side.
    Retries reuse the refund's idempotency key so the gateway settles
    it at most once.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(RetryableGatewayError):
    """
    Gateway call timed out (PAYMENT_GATEWAY_TIMEOUT_SECONDS).

    The request was sent but no response was received.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"


class GatewayRateLimitError(RetryableGatewayError):
    """Rate limited by the gateway. Retry with backoff."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class NonRetryableGatewayError(ExternalGatewayError):
    """
    Permanent gateway failure.

    Possible causes:
    - Refund amount exceeds the original payment
    - Unknown or invalid payment reference
    - Authentication failure (bad API key)

    These need manual intervention; the retry sweep skips them.
    """

    default_error_code: str = "GATEWAY_REJECTED"
    is_retryable: bool = False


class AlreadySettledGatewayError(ExternalGatewayError):
    """
    The gateway reports the payment as already refunded.

    Treated as success: an earlier attempt settled the refund but its
    response was lost.
    """

    default_error_code: str = "ALREADY_REFUNDED"
    is_retryable: bool = False


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class StaleRecordError(StateConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    This exception indicates that the record was modified by another
    process between read and update operations. The caller should
    either retry the operation with fresh data or abort.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(StateConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    This exception indicates that another process holds the lock
    and it couldn't be acquired within the timeout period.

    Attributes:
        details: Contains key and timeout information

    Example:
        lock = DistributedLock("cancellation:order:123", ttl=30, timeout=10)
        if not lock.acquire():
            raise LockAcquisitionError(
                "Failed to acquire lock 'cancellation:order:123' within 10s",
                details={"key": "cancellation:order:123", "timeout": 10}
            )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(StateConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Attributes:
        details: Contains current_state, target_state, and transition name

    Example:
        from django_fsm import TransitionNotAllowed

        try:
            refund.cancel()  # django-fsm transition
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot cancel refund from '{refund.status}' state",
                details={
                    "current_state": refund.status,
                    "target_state": "cancelled",
                    "transition": "cancel",
                }
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Gateway
    "ExternalGatewayError",
    "RetryableGatewayError",
    "GatewayTimeoutError",
    "GatewayRateLimitError",
    "NonRetryableGatewayError",
    "AlreadySettledGatewayError",
    # Concurrency control
    "StaleRecordError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
