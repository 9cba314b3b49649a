"""
Rewards application.

Coupon wallet and loyalty points, with the recovery services the
cancellation flow uses to give back what an order consumed.

Both ledgers are append-only. Recovery appends a reversing entry keyed by
an idempotency key, then updates the snapshot row (UserCoupon, PointBalance)
in the same transaction.

Usage:
    from rewards.services import CouponRecoveryService, PointRecoveryService
"""
