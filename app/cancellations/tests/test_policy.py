"""
Tests for the cancellation policy.

Tests cover:
- The policy table per order status
- Refund amount arithmetic (floor on the menu part)
- Reason categories per requester role
- The cancellability check
"""

from decimal import Decimal

import pytest

from cancellations.models import CancellationReason, CancelType, RequesterRole
from cancellations.policy import (
    POLICIES,
    calculate_refund_amount,
    check_cancellable,
    get_available_reasons,
    get_policy,
    is_valid_reason,
)
from cancellations.tests.factories import OrderCancellationFactory
from core.exceptions import ValidationError
from orders.models import OrderStatus
from orders.tests.factories import OrderFactory


class TestGetPolicy:
    """Tests for get_policy."""

    @pytest.mark.parametrize("status", [OrderStatus.CREATED, OrderStatus.CONFIRMED])
    def test_before_cooking_is_instant_full_refund(self, status):
        policy = get_policy(status)

        assert policy.can_cancel is True
        assert policy.cancel_type == CancelType.INSTANT
        assert policy.is_instant is True
        assert policy.refund_rate_percent == 100
        assert policy.can_refund_coupon is True
        assert policy.can_refund_points is True

    def test_preparing_needs_approval(self):
        policy = get_policy(OrderStatus.PREPARING)

        assert policy.cancel_type == CancelType.APPROVAL_REQUIRED
        assert policy.refund_rate_percent == 70
        assert policy.refund_rate == Decimal("0.7000")
        assert policy.can_refund_coupon is False
        assert policy.approval_timeout_minutes == 10

    def test_ready_needs_approval_with_half_refund(self):
        policy = get_policy(OrderStatus.READY)

        assert policy.refund_rate_percent == 50
        assert policy.refund_delivery_fee is True
        assert policy.approval_timeout_minutes == 5

    @pytest.mark.parametrize(
        "status", [OrderStatus.PICKED_UP, OrderStatus.DELIVERING]
    )
    def test_after_pickup_refunds_nothing(self, status):
        policy = get_policy(status)

        assert policy.can_cancel is True
        assert policy.cancel_type == CancelType.APPROVAL_REQUIRED
        assert policy.refund_rate_percent == 0
        assert policy.refund_delivery_fee is False
        assert policy.approval_timeout_minutes is None

    @pytest.mark.parametrize(
        "status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED, "unknown"]
    )
    def test_terminal_and_unknown_statuses_disallow(self, status):
        policy = get_policy(status)

        assert policy.can_cancel is False
        assert policy.cancel_type is None
        assert policy.message

    def test_every_order_status_has_a_policy(self):
        assert set(POLICIES) == set(OrderStatus.values)

    def test_refund_rate_never_increases_through_lifecycle(self):
        """Should refund no more as the order progresses."""
        lifecycle = [
            OrderStatus.CREATED,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.PICKED_UP,
            OrderStatus.DELIVERING,
            OrderStatus.DELIVERED,
        ]
        rates = [get_policy(status).refund_rate_percent for status in lifecycle]

        assert rates == sorted(rates, reverse=True)


class TestCalculateRefundAmount:
    """Tests for calculate_refund_amount."""

    def test_full_refund(self):
        breakdown = calculate_refund_amount(20000, 3000, 100)

        assert breakdown.menu == 20000
        assert breakdown.delivery == 3000
        assert breakdown.total == 23000

    def test_menu_part_rounds_down(self):
        """Should floor 19999 * 50% to 9999, not round half up."""
        breakdown = calculate_refund_amount(19999, 3000, 50)

        assert breakdown.menu == 9999
        assert breakdown.delivery == 3000
        assert breakdown.total == 12999

    def test_delivery_fee_excluded(self):
        breakdown = calculate_refund_amount(20000, 3000, 0, refund_delivery_fee=False)

        assert breakdown.total == 0

    def test_partial_refund_never_exceeds_rate(self):
        for total in (1, 3, 999, 12345, 19999):
            breakdown = calculate_refund_amount(total, 0, 70)
            assert breakdown.menu * 100 <= total * 70

    @pytest.mark.parametrize("rate", [-1, 101])
    def test_rate_out_of_range_raises(self, rate):
        with pytest.raises(ValidationError) as exc_info:
            calculate_refund_amount(20000, 3000, rate)

        assert exc_info.value.error_code == "INVALID_REFUND_RATE"


class TestReasons:
    """Tests for reason categories by role."""

    def test_customer_reasons(self):
        reasons = get_available_reasons(RequesterRole.CUSTOMER)

        assert reasons == [
            CancellationReason.CUSTOMER_CHANGE_MIND,
            CancellationReason.CUSTOMER_WRONG_ORDER,
            CancellationReason.CUSTOMER_DUPLICATE_ORDER,
            CancellationReason.OTHER,
        ]

    def test_owner_cannot_use_customer_reasons(self):
        assert not is_valid_reason(
            CancellationReason.CUSTOMER_CHANGE_MIND, RequesterRole.OWNER
        )
        assert is_valid_reason(
            CancellationReason.RESTAURANT_OUT_OF_STOCK, RequesterRole.OWNER
        )

    def test_system_error_is_not_for_customers(self):
        assert not is_valid_reason(
            CancellationReason.SYSTEM_ERROR, RequesterRole.CUSTOMER
        )

    def test_unknown_category_is_invalid(self):
        assert not is_valid_reason("made_up", RequesterRole.CUSTOMER)


class TestCheckCancellable:
    """Tests for check_cancellable."""

    def test_confirmed_order_can_be_requested(self, db):
        order = OrderFactory(status=OrderStatus.CONFIRMED)

        check = check_cancellable(order)

        assert check.can_request is True
        assert check.breakdown.total == 23000
        assert check.open_cancellation is None

    def test_open_request_blocks_another(self, db):
        cancellation = OrderCancellationFactory(preparing=True)

        check = check_cancellable(cancellation.order)

        assert check.can_request is False
        assert check.open_cancellation == cancellation

    def test_delivered_order_cannot_be_requested(self, db):
        check = check_cancellable(OrderFactory(status=OrderStatus.DELIVERED))

        assert check.can_request is False
        assert check.breakdown.total == 0
