"""
Tests for RecoveryOrchestrator.

Tests cover:
- Running coupon, points and refund steps for a completed cancellation
- Re-runs skipping steps already done
- One failing step leaving the others alone
- Recovery status and manual retries
- The pending-recovery sweep
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from cancellations.models import OrderCancellation
from cancellations.services import RecoveryOrchestrator
from cancellations.tests.factories import OrderCancellationFactory
from core.exceptions import NotFoundError, StateConflictError, ValidationError
from payments.exceptions import GatewayTimeoutError, NonRetryableGatewayError
from payments.models import Refund
from payments.state_machines import RefundState
from payments.tests.factories import RefundFactory
from rewards.models import PointBalance
from rewards.tests.factories import CouponUsageFactory, PointTransactionFactory


@pytest.fixture
def cancellation(db):
    """Completed full-refund cancellation that restores coupon and points."""
    return OrderCancellationFactory(
        completed=True,
        can_refund_coupon=True,
        can_refund_points=True,
    )


def completed_long_ago(**kwargs):
    return OrderCancellationFactory(
        completed=True,
        completed_at=timezone.now() - timedelta(minutes=30),
        **kwargs,
    )


class TestProcessCancellationRecovery:
    """Tests for process_cancellation_recovery."""

    def test_runs_every_step(self, cancellation, fake_gateway):
        """Should restore coupon and points and complete the refund."""
        CouponUsageFactory(order=cancellation.order)
        PointTransactionFactory(order=cancellation.order, amount=-1500)

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.fully_complete is True
        assert result.errors == {}
        cancellation.refresh_from_db()
        assert cancellation.coupon_refunded is True
        assert cancellation.points_refunded is True
        assert cancellation.recovery_attempts == 1
        assert cancellation.last_recovery_at is not None
        assert PointBalance.objects.get(user=cancellation.order.user).balance == 1500

        refund = Refund.objects.get(cancellation=cancellation)
        assert refund.amount == 23000
        assert refund.status == RefundState.COMPLETED
        assert fake_gateway.call_count == 1

    def test_rerun_does_not_repeat_steps(self, cancellation, fake_gateway):
        """Should skip every step already done on the second run."""
        PointTransactionFactory(order=cancellation.order, amount=-1000)
        RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.fully_complete is True
        assert fake_gateway.call_count == 1
        assert Refund.objects.filter(cancellation=cancellation).count() == 1
        assert PointBalance.objects.get(user=cancellation.order.user).balance == 1000
        cancellation.refresh_from_db()
        assert cancellation.recovery_attempts == 2

    def test_flagged_step_is_not_called(self, db):
        cancellation = OrderCancellationFactory(
            completed=True, can_refund_coupon=True, coupon_refunded=True
        )

        with patch(
            "cancellations.services.recovery_orchestrator.CouponRecoveryService.recover"
        ) as recover:
            result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        recover.assert_not_called()
        assert result.coupon is True

    def test_ineligible_steps_are_not_applicable(self, db):
        """Should leave coupon and points as None when the policy excludes them."""
        cancellation = OrderCancellationFactory(completed=True)

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.coupon is None
        assert result.points is None
        assert result.refund is True

    def test_zero_refund_creates_nothing(self, db, fake_gateway):
        cancellation = OrderCancellationFactory(
            completed=True,
            can_refund_points=True,
            menu_refund_amount=0,
            delivery_refund_amount=0,
            refund_rate=0,
        )

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.refund is None
        assert result.fully_complete is True
        assert not Refund.objects.exists()
        assert fake_gateway.call_count == 0

    def test_expired_coupon_does_not_block_other_steps(self, cancellation):
        """Should report the coupon and still restore points and refund."""
        CouponUsageFactory(
            order=cancellation.order,
            user_coupon__expires_at=timezone.now() - timedelta(days=1),
        )
        PointTransactionFactory(order=cancellation.order, amount=-1000)

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.coupon is False
        assert result.errors["coupon"] == "NOT_RECOVERABLE"
        assert result.points is True
        assert result.refund is True
        assert result.fully_complete is False
        cancellation.refresh_from_db()
        assert cancellation.coupon_refunded is False
        assert cancellation.points_refunded is True

    def test_gateway_failure_keeps_reward_steps(self, cancellation, fake_gateway):
        fake_gateway.fail_with(GatewayTimeoutError("timed out", gateway_code="timeout"))
        PointTransactionFactory(order=cancellation.order, amount=-1000)

        result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.refund is False
        assert result.errors == {"refund": "timeout"}
        assert result.points is True
        assert Refund.objects.get(cancellation=cancellation).status == RefundState.FAILED

    def test_step_exception_is_reported(self, cancellation):
        """Should record the exception type instead of raising."""
        with patch(
            "cancellations.services.recovery_orchestrator.PointRecoveryService.recover",
            side_effect=RuntimeError("ledger down"),
        ):
            result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert result.points is False
        assert result.errors["points"] == "RuntimeError"
        assert result.coupon is True
        assert result.refund is True

    def test_pending_cancellation_raises(self, db):
        cancellation = OrderCancellationFactory(preparing=True)

        with pytest.raises(StateConflictError) as exc_info:
            RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        assert exc_info.value.error_code == "CANCELLATION_NOT_COMPLETED"

    def test_unknown_cancellation_raises(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            RecoveryOrchestrator.process_cancellation_recovery(uuid.uuid4())

        assert exc_info.value.error_code == "CANCELLATION_NOT_FOUND"


class TestRecoveryStatus:
    """Tests for get_recovery_status."""

    def test_before_recovery(self, db):
        cancellation = OrderCancellationFactory(completed=True, can_refund_points=True)

        status = RecoveryOrchestrator.get_recovery_status(cancellation.id)

        assert status["coupon"] == "not_applicable"
        assert status["points"] == "pending"
        assert status["refund"] == "pending"
        assert status["refund_id"] is None
        assert status["recovery_attempts"] == 0

    def test_after_recovery(self, cancellation):
        RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)

        status = RecoveryOrchestrator.get_recovery_status(cancellation.id)

        refund = Refund.objects.get(cancellation=cancellation)
        assert status["coupon"] == "done"
        assert status["points"] == "done"
        assert status["refund"] == "done"
        assert status["refund_id"] == str(refund.id)
        assert status["refund_state"] == RefundState.COMPLETED

    def test_failed_refund_is_pending(self, db):
        refund = RefundFactory(failed=True)

        status = RecoveryOrchestrator.get_recovery_status(refund.cancellation_id)

        assert status["refund"] == "pending"
        assert status["refund_state"] == RefundState.FAILED


class TestRetryRecovery:
    """Tests for retry_recovery."""

    def test_selected_steps_only(self, cancellation, fake_gateway):
        """Should run only the named steps."""
        result = RecoveryOrchestrator.retry_recovery(cancellation.id, steps=["points"])

        assert result.points is True
        assert result.coupon is None
        assert result.refund is None
        assert fake_gateway.call_count == 0
        cancellation.refresh_from_db()
        assert cancellation.coupon_refunded is False

    def test_retries_failed_refund(self, db, fake_gateway):
        refund = RefundFactory(failed=True)

        result = RecoveryOrchestrator.retry_recovery(
            refund.cancellation_id, steps=["refund"]
        )

        assert result.refund is True
        refund.refresh_from_db()
        assert refund.status == RefundState.COMPLETED

    def test_does_not_resend_non_retryable_refund(self, cancellation, fake_gateway):
        """Should leave a refund the gateway refused for good to an operator."""
        fake_gateway.fail_with(
            NonRetryableGatewayError("amount too large", gateway_code="amount_too_large")
        )
        first = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)
        assert first.refund is False
        assert fake_gateway.call_count == 1

        fake_gateway.fail_with(None)
        result = RecoveryOrchestrator.retry_recovery(cancellation.id, steps=["refund"])

        assert result.refund is False
        assert result.errors["refund"] == "NOT_RETRYABLE"
        assert fake_gateway.call_count == 1
        refund = Refund.objects.get(cancellation=cancellation)
        assert refund.status == RefundState.FAILED
        assert refund.is_retryable is False

    def test_unknown_step_raises(self, cancellation):
        with pytest.raises(ValidationError) as exc_info:
            RecoveryOrchestrator.retry_recovery(cancellation.id, steps=["voucher"])

        assert exc_info.value.error_code == "INVALID_RECOVERY_STEP"
        assert exc_info.value.details["steps"] == ["voucher"]


class TestProcessPendingRecoveries:
    """Tests for the recovery sweep."""

    def test_recovers_old_cancellations(self, db, fake_gateway):
        cancellation = completed_long_ago(can_refund_points=True)

        result = RecoveryOrchestrator.process_pending_recoveries()

        assert result == {"processed": 1, "fully_complete": 1}
        cancellation.refresh_from_db()
        assert cancellation.points_refunded is True
        assert Refund.objects.filter(cancellation=cancellation).exists()

    def test_skips_recent_cancellations(self, db):
        """Should leave freshly completed cancellations to the request path."""
        OrderCancellationFactory(completed=True, can_refund_points=True)

        result = RecoveryOrchestrator.process_pending_recoveries()

        assert result["processed"] == 0

    def test_skips_fully_recovered(self, db):
        cancellation = completed_long_ago(can_refund_points=True, points_refunded=True)
        RefundFactory(cancellation=cancellation, completed=True)

        result = RecoveryOrchestrator.process_pending_recoveries()

        assert result["processed"] == 0

    def test_leaves_existing_refund_to_refund_sweep(self, db):
        """Should skip when the only outstanding step is an existing refund."""
        cancellation = completed_long_ago()
        RefundFactory(cancellation=cancellation, failed=True)

        result = RecoveryOrchestrator.process_pending_recoveries()

        assert result["processed"] == 0

    def test_stops_after_max_attempts(self, db, settings):
        settings.RECOVERY_MAX_ATTEMPTS = 3
        completed_long_ago(can_refund_points=True, recovery_attempts=3)

        result = RecoveryOrchestrator.process_pending_recoveries()

        assert result["processed"] == 0

    def test_expired_coupon_is_retried_until_max_attempts(
        self, db, fake_gateway, settings
    ):
        settings.RECOVERY_MAX_ATTEMPTS = 2
        cancellation = completed_long_ago(can_refund_coupon=True)
        CouponUsageFactory(
            order=cancellation.order,
            user_coupon__expires_at=timezone.now() - timedelta(days=1),
        )

        first = RecoveryOrchestrator.process_pending_recoveries()
        second = RecoveryOrchestrator.process_pending_recoveries()
        third = RecoveryOrchestrator.process_pending_recoveries()

        assert first == {"processed": 1, "fully_complete": 0}
        assert second == {"processed": 1, "fully_complete": 0}
        assert third["processed"] == 0
        cancellation.refresh_from_db()
        assert cancellation.coupon_refunded is False
        assert cancellation.recovery_attempts == 2
        assert fake_gateway.call_count == 1

    def test_respects_limit(self, db):
        for _ in range(3):
            completed_long_ago(can_refund_points=True)

        result = RecoveryOrchestrator.process_pending_recoveries(limit=2)

        assert result["processed"] == 2
        assert OrderCancellation.objects.filter(points_refunded=True).count() == 2

    def test_older_than_override(self, db):
        OrderCancellationFactory(completed=True, can_refund_points=True)

        with freeze_time(timezone.now() + timedelta(seconds=1)):
            result = RecoveryOrchestrator.process_pending_recoveries(
                older_than_minutes=0
            )

        assert result["processed"] == 1
