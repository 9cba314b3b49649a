"""
Cancellation-specific exceptions.

Exception Hierarchy:
    AlreadyCancelledError - Order is already cancelled (StateConflictError)
    PendingCancellationExistsError - An open request exists (StateConflictError)
    PolicyDisallowsError - Order status does not allow cancelling (StateConflictError)
    CancellationNotPendingError - Decision on a decided request (StateConflictError)
    InvalidReasonError - Reason not allowed for the requester (ValidationError)
    ApprovalNotAllowedError - Caller may not decide on the request (AuthorizationError)

All render through BaseApplicationError.to_dict() in the views.
"""

from __future__ import annotations

from core.exceptions import AuthorizationError, StateConflictError, ValidationError


class AlreadyCancelledError(StateConflictError):
    default_error_code: str = "ALREADY_CANCELLED"


class PendingCancellationExistsError(StateConflictError):
    """An open (pending or approved) cancellation already exists for the order."""

    default_error_code: str = "PENDING_CANCEL_EXISTS"


class PolicyDisallowsError(StateConflictError):
    """
    The cancellation policy does not allow cancelling at this stage.

    The message is the policy's human-readable explanation.
    """

    default_error_code: str = "POLICY_DISALLOWS"


class CancellationNotPendingError(StateConflictError):
    default_error_code: str = "CANCELLATION_NOT_PENDING"


class InvalidReasonError(ValidationError):
    default_error_code: str = "INVALID_REASON"


class ApprovalNotAllowedError(AuthorizationError):
    """
    The caller may not approve or reject this cancellation.

    Raised for users who are neither the restaurant owner nor an admin,
    and for the requester deciding on their own request.
    """

    default_error_code: str = "APPROVAL_NOT_ALLOWED"


__all__ = [
    "AlreadyCancelledError",
    "PendingCancellationExistsError",
    "PolicyDisallowsError",
    "CancellationNotPendingError",
    "InvalidReasonError",
    "ApprovalNotAllowedError",
]
