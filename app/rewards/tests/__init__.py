"""
Tests for rewards app.

- test_models.py: Append-only ledger rows and wallet expiry
- test_coupon_recovery.py: CouponRecoveryService
- test_point_recovery.py: PointRecoveryService
"""
