"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    CLAIMABLE_REFUND_STATES,
    TERMINAL_REFUND_STATES,
    RefundState,
)

__all__ = [
    "CLAIMABLE_REFUND_STATES",
    "RefundState",
    "TERMINAL_REFUND_STATES",
]
