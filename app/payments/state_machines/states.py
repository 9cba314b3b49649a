"""
State enums for payment models.

This module defines the state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Refund States:
    pending → processing → completed
    pending → processing → failed → processing (retry)
    pending/failed → cancelled
"""

from django.db import models


class RefundState(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: COMPLETED, CANCELLED

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING → PROCESSING → FAILED

    Recovery Flow:
        FAILED → PROCESSING (retry, retry_count + 1)

    Cancellation Flow:
        PENDING → CANCELLED
        FAILED → CANCELLED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


# States from which a gateway attempt may be started
CLAIMABLE_REFUND_STATES = (RefundState.PENDING, RefundState.FAILED)

# States a refund never leaves
TERMINAL_REFUND_STATES = (RefundState.COMPLETED, RefundState.CANCELLED)


__all__ = [
    "CLAIMABLE_REFUND_STATES",
    "RefundState",
    "TERMINAL_REFUND_STATES",
]
