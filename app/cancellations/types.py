"""
Result types returned by the cancellation services.

- RecoveryResult: Per-step outcome of one recovery run
- CancellationOutcome: What a cancel or approve call produced
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cancellations.models import OrderCancellation
    from payments.models import Refund


RECOVERY_STEPS = ("coupon", "points", "refund")


@dataclass
class RecoveryResult:
    """
    Outcome of a recovery run.

    Each step is True (done, now or earlier), False (attempted and not
    done) or None (not applicable to this cancellation, or not selected).

    Attributes:
        coupon: Coupon restore
        points: Points restore
        refund: Gateway refund
        errors: Error code per failed step
    """

    coupon: bool | None = None
    points: bool | None = None
    refund: bool | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def fully_complete(self) -> bool:
        return False not in (self.coupon, self.points, self.refund)

    def to_dict(self) -> dict[str, Any]:
        return {
            "coupon": self.coupon,
            "points": self.points,
            "refund": self.refund,
            "errors": self.errors,
            "fully_complete": self.fully_complete,
        }


@dataclass
class CancellationOutcome:
    cancellation: OrderCancellation
    refund: Refund | None = None
    recovery: RecoveryResult | None = None
