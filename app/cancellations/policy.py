"""
Cancellation policy by order status.

Pure functions: nothing here touches the database except
check_cancellable(), which reads the order's open cancellation.

Usage:
    from cancellations.policy import calculate_refund_amount, get_policy

    policy = get_policy(order.status)
    if policy.can_cancel:
        breakdown = calculate_refund_amount(
            order.total_amount,
            order.delivery_fee,
            policy.refund_rate_percent,
            policy.refund_delivery_fee,
        )
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from cancellations.models import (
    CancellationReason,
    CancelType,
    OPEN_CANCELLATION_STATUSES,
    OrderCancellation,
    RequesterRole,
)
from orders.models import OrderStatus

if TYPE_CHECKING:
    from orders.models import Order


# =============================================================================
# Policy
# =============================================================================


@dataclass(frozen=True)
class CancellationPolicy:
    """
    What cancelling an order in a given status means.

    Attributes:
        can_cancel: Whether a cancellation may be requested at all
        cancel_type: Instant or approval-required (None when disallowed)
        refund_rate_percent: Percentage of the menu subtotal refunded
        can_refund_coupon: Whether the coupon used is restored
        can_refund_points: Whether the points spent are restored
        refund_delivery_fee: Whether the delivery fee is refunded
        approval_timeout_minutes: Minutes before a pending request is
            auto-approved (None: the owner must decide)
        message: Human-readable explanation shown to the customer
    """

    can_cancel: bool
    cancel_type: str | None
    refund_rate_percent: int
    can_refund_coupon: bool
    can_refund_points: bool
    refund_delivery_fee: bool
    approval_timeout_minutes: int | None
    message: str

    @property
    def is_instant(self) -> bool:
        return self.cancel_type == CancelType.INSTANT

    @property
    def refund_rate(self) -> Decimal:
        """Refund rate as a fraction (0.0 - 1.0)."""
        return (Decimal(self.refund_rate_percent) / 100).quantize(Decimal("0.0001"))


def _disallowed(message: str) -> CancellationPolicy:
    return CancellationPolicy(
        can_cancel=False,
        cancel_type=None,
        refund_rate_percent=0,
        can_refund_coupon=False,
        can_refund_points=False,
        refund_delivery_fee=False,
        approval_timeout_minutes=None,
        message=message,
    )


POLICIES: dict[str, CancellationPolicy] = {
    OrderStatus.CREATED: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.INSTANT,
        refund_rate_percent=100,
        can_refund_coupon=True,
        can_refund_points=True,
        refund_delivery_fee=True,
        approval_timeout_minutes=None,
        message="The order has not been accepted yet. It is cancelled "
        "immediately with a full refund.",
    ),
    OrderStatus.CONFIRMED: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.INSTANT,
        refund_rate_percent=100,
        can_refund_coupon=True,
        can_refund_points=True,
        refund_delivery_fee=True,
        approval_timeout_minutes=None,
        message="Cooking has not started. The order is cancelled immediately "
        "with a full refund.",
    ),
    OrderStatus.PREPARING: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.APPROVAL_REQUIRED,
        refund_rate_percent=70,
        can_refund_coupon=False,
        can_refund_points=False,
        refund_delivery_fee=True,
        approval_timeout_minutes=10,
        message="Cooking has started. The restaurant must approve the "
        "cancellation and 70% of the menu price is refunded.",
    ),
    OrderStatus.READY: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.APPROVAL_REQUIRED,
        refund_rate_percent=50,
        can_refund_coupon=False,
        can_refund_points=False,
        refund_delivery_fee=True,
        approval_timeout_minutes=5,
        message="The food is ready. The restaurant must approve the "
        "cancellation and 50% of the menu price is refunded.",
    ),
    OrderStatus.PICKED_UP: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.APPROVAL_REQUIRED,
        refund_rate_percent=0,
        can_refund_coupon=False,
        can_refund_points=False,
        refund_delivery_fee=False,
        approval_timeout_minutes=None,
        message="The rider has picked up the order. The restaurant must "
        "approve the cancellation and nothing is refunded.",
    ),
    OrderStatus.DELIVERING: CancellationPolicy(
        can_cancel=True,
        cancel_type=CancelType.APPROVAL_REQUIRED,
        refund_rate_percent=0,
        can_refund_coupon=False,
        can_refund_points=False,
        refund_delivery_fee=False,
        approval_timeout_minutes=None,
        message="The order is on its way. The restaurant must approve the "
        "cancellation and nothing is refunded.",
    ),
    OrderStatus.DELIVERED: _disallowed(
        "The order has been delivered and can no longer be cancelled."
    ),
    OrderStatus.CANCELLED: _disallowed("The order is already cancelled."),
}


def get_policy(order_status: str) -> CancellationPolicy:
    """Policy for an order status. Unknown statuses cannot be cancelled."""
    policy = POLICIES.get(order_status)
    if policy is None:
        return _disallowed(f"Orders in status '{order_status}' cannot be cancelled.")
    return policy


# =============================================================================
# Refund Amount
# =============================================================================


@dataclass(frozen=True)
class RefundBreakdown:
    menu: int
    delivery: int
    total: int


def calculate_refund_amount(
    total_amount: int,
    delivery_fee: int,
    rate_percent: int,
    refund_delivery_fee: bool = True,
) -> RefundBreakdown:
    """
    Split the refund into its menu and delivery parts.

    The menu part is rounded down in integer arithmetic so a partial
    refund never exceeds the rate.

    Raises:
        ValidationError: If rate_percent is outside 0..100

    Example:
        >>> calculate_refund_amount(19999, 3000, 50)
        RefundBreakdown(menu=9999, delivery=3000, total=12999)
    """
    if not 0 <= rate_percent <= 100:
        raise ValidationError(
            f"Refund rate must be between 0 and 100, got {rate_percent}",
            error_code="INVALID_REFUND_RATE",
            details={"rate_percent": rate_percent},
        )

    menu = total_amount * rate_percent // 100
    delivery = delivery_fee if refund_delivery_fee else 0
    return RefundBreakdown(menu=menu, delivery=delivery, total=menu + delivery)


# =============================================================================
# Reasons
# =============================================================================

REASON_ROLES: dict[str, frozenset[str]] = {
    CancellationReason.CUSTOMER_CHANGE_MIND: frozenset([RequesterRole.CUSTOMER]),
    CancellationReason.CUSTOMER_WRONG_ORDER: frozenset([RequesterRole.CUSTOMER]),
    CancellationReason.CUSTOMER_DUPLICATE_ORDER: frozenset(
        [RequesterRole.CUSTOMER, RequesterRole.ADMIN, RequesterRole.SYSTEM]
    ),
    CancellationReason.RESTAURANT_CLOSED: frozenset(
        [RequesterRole.OWNER, RequesterRole.ADMIN, RequesterRole.SYSTEM]
    ),
    CancellationReason.RESTAURANT_OUT_OF_STOCK: frozenset(
        [RequesterRole.OWNER, RequesterRole.ADMIN]
    ),
    CancellationReason.RESTAURANT_TOO_BUSY: frozenset(
        [RequesterRole.OWNER, RequesterRole.ADMIN]
    ),
    CancellationReason.DELIVERY_ISSUE: frozenset(
        [RequesterRole.RIDER, RequesterRole.ADMIN, RequesterRole.SYSTEM]
    ),
    CancellationReason.SYSTEM_ERROR: frozenset(
        [RequesterRole.ADMIN, RequesterRole.SYSTEM]
    ),
    CancellationReason.OTHER: frozenset(
        [
            RequesterRole.CUSTOMER,
            RequesterRole.OWNER,
            RequesterRole.RIDER,
            RequesterRole.ADMIN,
        ]
    ),
}


def get_available_reasons(role: str) -> list[CancellationReason]:
    """Reason categories a requester in this role may pick, in display order."""
    return [
        reason
        for reason in CancellationReason
        if role in REASON_ROLES.get(reason, frozenset())
    ]


def is_valid_reason(category: str, role: str) -> bool:
    return role in REASON_ROLES.get(category, frozenset())


# =============================================================================
# Cancellability Check
# =============================================================================


@dataclass(frozen=True)
class CancellabilityCheck:
    """Policy, estimated refund and open request for one order."""

    policy: CancellationPolicy
    breakdown: RefundBreakdown
    open_cancellation: OrderCancellation | None

    @property
    def can_request(self) -> bool:
        return self.policy.can_cancel and self.open_cancellation is None


def check_cancellable(order: Order) -> CancellabilityCheck:
    """
    Everything a client needs before showing the cancel button.

    The breakdown is an estimate: the policy is evaluated again, under
    the per-order lock, when the cancellation is requested.
    """
    policy = get_policy(order.status)
    breakdown = calculate_refund_amount(
        order.total_amount,
        order.delivery_fee,
        policy.refund_rate_percent,
        policy.refund_delivery_fee,
    )
    open_cancellation = OrderCancellation.objects.filter(
        order_id=order.id,
        status__in=OPEN_CANCELLATION_STATUSES,
    ).first()
    return CancellabilityCheck(
        policy=policy,
        breakdown=breakdown,
        open_cancellation=open_cancellation,
    )
