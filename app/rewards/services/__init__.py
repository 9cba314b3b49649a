"""
Recovery services for coupons and points.

Usage:
    from rewards.services import CouponRecoveryService, PointRecoveryService

    result = CouponRecoveryService.recover(order.id)
    if result.success:
        cancellation.coupon_refunded = True
"""

from rewards.services.coupon_recovery import CouponRecoveryService
from rewards.services.point_recovery import PointRecoveryService

__all__ = [
    "CouponRecoveryService",
    "PointRecoveryService",
]
