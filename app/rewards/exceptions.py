"""
Rewards-specific exceptions.

Exception Hierarchy:
    StateConflictError (core)
    └── NotRecoverableError - The consumed benefit cannot be given back
"""

from core.exceptions import StateConflictError


class NotRecoverableError(StateConflictError):
    """
    Raised when a coupon or point deduction cannot be restored.

    Use for:
    - A coupon whose validity window has already closed

    The recovery services convert this into a failed ServiceResult; the
    orchestrator records it and leaves the step flag unset.
    """

    default_error_code: str = "NOT_RECOVERABLE"
