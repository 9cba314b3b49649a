"""
Tests for rewards models.

Tests cover:
- Append-only guards on ledger rows
- Wallet coupon expiry
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from core.exceptions import PersistenceError
from rewards.tests.factories import (
    CouponFactory,
    CouponUsageFactory,
    PointTransactionFactory,
    UserCouponFactory,
)


class TestAppendOnlyLedger:
    """Ledger rows can be inserted but never changed."""

    def test_coupon_usage_refuses_update(self, db):
        usage = CouponUsageFactory()
        usage.discount_amount = 1

        with pytest.raises(PersistenceError) as exc_info:
            usage.save()

        assert exc_info.value.error_code == "IMMUTABLE_RECORD"

    def test_point_transaction_refuses_update(self, db):
        entry = PointTransactionFactory()
        entry.amount = -1

        with pytest.raises(PersistenceError):
            entry.save()

    def test_point_transaction_refuses_delete(self, db):
        entry = PointTransactionFactory()

        with pytest.raises(PersistenceError):
            entry.delete()


class TestUserCouponExpiry:
    """Tests for UserCoupon.is_expired."""

    def test_not_expired_within_window(self, db):
        user_coupon = UserCouponFactory()

        assert user_coupon.is_expired() is False

    def test_expired_by_coupon_window(self, db):
        coupon = CouponFactory(valid_until=timezone.now() - timedelta(minutes=1))
        user_coupon = UserCouponFactory(coupon=coupon)

        assert user_coupon.is_expired() is True

    def test_wallet_expiry_takes_precedence(self, db):
        user_coupon = UserCouponFactory(
            expires_at=timezone.now() - timedelta(days=1),
        )

        assert user_coupon.is_expired() is True
