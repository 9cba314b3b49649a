"""
Data types returned by the recovery services.

Usage:
    from rewards.types import RecoveryStepResult

    result = CouponRecoveryService.recover(order.id)
    if result.success and result.data.already_recovered:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class RecoveryStepResult:
    """
    Outcome of one successful recovery call.

    Attributes:
        step: "coupon" or "points"
        applied: True when this call appended a reversing entry
        already_recovered: True when an earlier call already did
        amount: Discount or points given back (0 when nothing was used)
        entry_id: The reversing ledger entry, if any
    """

    step: str
    applied: bool = False
    already_recovered: bool = False
    amount: int = 0
    entry_id: uuid.UUID | None = None

    @property
    def nothing_to_recover(self) -> bool:
        return not self.applied and not self.already_recovered
