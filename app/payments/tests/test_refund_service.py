"""
Tests for RefundService.

Tests cover:
- Idempotent refund creation per cancellation
- Claim → gateway → finalize processing and its failure modes
- Manual retries and their authorization
- The retry sweep (backoff, ceiling, stale pending, stuck processing)
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from cancellations.tests.factories import OrderCancellationFactory
from core.exceptions import AuthorizationError, NotFoundError, StateConflictError
from orders.models import OrderStatus
from orders.tests.factories import OrderFactory
from payments.exceptions import (
    AlreadySettledGatewayError,
    GatewayTimeoutError,
    InvalidStateTransitionError,
    NonRetryableGatewayError,
)
from payments.models import Refund
from payments.services import RefundService
from payments.state_machines import RefundState
from payments.tests.factories import RefundFactory


class TestCreateRefund:
    """Tests for RefundService.create_refund."""

    def test_creates_pending_refund_from_cancellation(self, db):
        """Should copy amounts and the payment reference from the order."""
        cancellation = OrderCancellationFactory(completed=True)

        refund = RefundService.create_refund(cancellation)

        assert refund.status == RefundState.PENDING
        assert refund.amount == 23000
        assert refund.original_amount == 23000
        assert refund.refund_rate == Decimal("1.0000")
        assert refund.payment_key == cancellation.order.payment_key
        assert refund.user_id == cancellation.order.user_id

    def test_is_idempotent(self, db):
        """Should return the existing active refund on a second call."""
        cancellation = OrderCancellationFactory(completed=True)

        first = RefundService.create_refund(cancellation)
        second = RefundService.create_refund(cancellation)

        assert first.id == second.id
        assert Refund.objects.filter(cancellation=cancellation).count() == 1

    def test_returns_none_for_zero_amount(self, db):
        """Should not create a refund when nothing is owed."""
        cancellation = OrderCancellationFactory(
            completed=True,
            menu_refund_amount=0,
            delivery_refund_amount=0,
            refund_rate=Decimal("0"),
        )

        assert RefundService.create_refund(cancellation) is None
        assert not Refund.objects.exists()


class TestProcessRefund:
    """Tests for RefundService.process_refund."""

    def test_completes_pending_refund(self, fake_gateway, pending_refund):
        """Should refund through the gateway and record the reference."""
        outcome = RefundService.process_refund(pending_refund.id)

        assert outcome.success is True
        assert outcome.gateway_called is True
        pending_refund.refresh_from_db()
        assert pending_refund.status == RefundState.COMPLETED
        assert pending_refund.pg_transaction_id == "re_fake_1"
        assert pending_refund.retry_count == 0

    def test_sends_stable_idempotency_key(self, fake_gateway, failed_refund):
        """Should reuse the same key on every attempt."""
        fake_gateway.fail_with(GatewayTimeoutError("timed out", gateway_code="timeout"))
        RefundService.process_refund(failed_refund.id)
        fake_gateway.fail_with(None)
        RefundService.process_refund(failed_refund.id)

        keys = {request.idempotency_key for request in fake_gateway.requests}
        assert keys == {RefundService.idempotency_key(failed_refund)}
        assert fake_gateway.requests[0].amount == failed_refund.amount

    def test_failed_refund_succeeds_on_retry(self, fake_gateway, failed_refund):
        """Should move failed → processing → completed, counting one retry."""
        retry_count_before = failed_refund.retry_count

        outcome = RefundService.process_refund(failed_refund.id)

        assert outcome.success is True
        failed_refund.refresh_from_db()
        assert failed_refund.status == RefundState.COMPLETED
        assert failed_refund.retry_count == retry_count_before + 1
        assert failed_refund.last_error is None

    def test_completed_refund_does_not_call_gateway(
        self, fake_gateway, completed_refund
    ):
        """Should report success without another gateway call."""
        outcome = RefundService.process_refund(completed_refund.id)

        assert outcome.success is True
        assert outcome.gateway_called is False
        assert fake_gateway.call_count == 0

    def test_retryable_failure_is_recorded(self, fake_gateway, pending_refund):
        """Should leave the refund failed and retryable."""
        fake_gateway.fail_with(GatewayTimeoutError("timed out", gateway_code="timeout"))

        outcome = RefundService.process_refund(pending_refund.id)

        assert outcome.success is False
        assert outcome.is_retryable is True
        pending_refund.refresh_from_db()
        assert pending_refund.status == RefundState.FAILED
        assert pending_refund.error_code == "timeout"
        assert pending_refund.is_retryable is True

    def test_permanent_failure_is_not_retryable(self, fake_gateway, pending_refund):
        """Should record permanent gateway rejections as non-retryable."""
        fake_gateway.fail_with(
            NonRetryableGatewayError("amount too large", gateway_code="amount_too_large")
        )

        outcome = RefundService.process_refund(pending_refund.id)

        assert outcome.is_retryable is False
        pending_refund.refresh_from_db()
        assert pending_refund.status == RefundState.FAILED
        assert pending_refund.is_retryable is False

    def test_already_settled_counts_as_success(self, fake_gateway, failed_refund):
        """Should complete the refund when the gateway already refunded it."""
        fake_gateway.fail_with(
            AlreadySettledGatewayError(
                "already refunded", gateway_code="charge_already_refunded"
            )
        )

        outcome = RefundService.process_refund(failed_refund.id)

        assert outcome.success is True
        failed_refund.refresh_from_db()
        assert failed_refund.status == RefundState.COMPLETED

    def test_cash_refund_settles_offline(self, fake_gateway, db):
        """Should complete cash refunds without a gateway call."""
        order = OrderFactory(cash=True, status=OrderStatus.CANCELLED)
        cancellation = OrderCancellationFactory(completed=True, order=order)
        refund = RefundFactory(cancellation=cancellation)

        outcome = RefundService.process_refund(refund.id)

        assert outcome.success is True
        assert fake_gateway.call_count == 0
        refund.refresh_from_db()
        assert refund.status == RefundState.COMPLETED
        assert refund.pg_response == {"settlement": "offline"}

    def test_missing_payment_key_fails_permanently(self, fake_gateway, db):
        """Should fail without calling the gateway when no reference exists."""
        refund = RefundFactory(payment_key=None)

        outcome = RefundService.process_refund(refund.id)

        assert outcome.error_code == "MISSING_PAYMENT_KEY"
        assert outcome.is_retryable is False
        assert fake_gateway.call_count == 0

    def test_processing_refund_is_not_claimed_twice(self, fake_gateway, db):
        """Should skip a refund another worker is already processing."""
        refund = RefundFactory()
        refund.start_processing()
        refund.save()

        outcome = RefundService.process_refund(refund.id)

        assert outcome.success is False
        assert outcome.error_code == "REFUND_IN_PROGRESS"
        assert outcome.gateway_called is False
        assert fake_gateway.call_count == 0

    def test_cancelled_refund_is_not_processed(self, fake_gateway, pending_refund):
        """Should not call the gateway for a cancelled refund."""
        RefundService.cancel_refund(pending_refund.id)

        outcome = RefundService.process_refund(pending_refund.id)

        assert outcome.error_code == "REFUND_CANCELLED"
        assert fake_gateway.call_count == 0

    def test_unknown_refund_raises_not_found(self, db):
        """Should raise NotFoundError for an unknown id."""
        with pytest.raises(NotFoundError) as exc_info:
            RefundService.process_refund(uuid.uuid4())

        assert exc_info.value.error_code == "REFUND_NOT_FOUND"


class TestRetryRefund:
    """Tests for RefundService.retry_refund."""

    def test_owner_can_retry_failed_refund(self, fake_gateway, failed_refund):
        """Should process the refund for the order's customer."""
        outcome = RefundService.retry_refund(failed_refund.id, failed_refund.order.user)

        assert outcome.success is True

    def test_retry_ignores_automatic_ceiling(self, fake_gateway, db):
        """Should allow manual retries past REFUND_MAX_RETRIES."""
        refund = RefundFactory(failed=True, retry_count=10)

        outcome = RefundService.retry_refund(refund.id, refund.order.user)

        assert outcome.success is True

    def test_other_customer_cannot_retry(self, fake_gateway, failed_refund):
        """Should reject customers who did not place the order."""
        with pytest.raises(AuthorizationError) as exc_info:
            RefundService.retry_refund(failed_refund.id, UserFactory())

        assert exc_info.value.error_code == "NOT_REFUND_OWNER"
        assert fake_gateway.call_count == 0

    def test_admin_can_retry(self, fake_gateway, failed_refund):
        """Should let admins retry any refund."""
        admin = UserFactory(role=UserRole.ADMIN)

        outcome = RefundService.retry_refund(failed_refund.id, admin)

        assert outcome.success is True

    def test_completed_refund_raises(self, fake_gateway, completed_refund):
        """Should reject retrying a completed refund."""
        with pytest.raises(StateConflictError) as exc_info:
            RefundService.retry_refund(completed_refund.id, completed_refund.order.user)

        assert exc_info.value.error_code == "ALREADY_COMPLETED"

    def test_permanent_failure_raises(self, fake_gateway, db):
        """Should reject retrying a permanently failed refund."""
        refund = RefundFactory(failed=True, is_retryable=False)

        with pytest.raises(StateConflictError) as exc_info:
            RefundService.retry_refund(refund.id, refund.order.user)

        assert exc_info.value.error_code == "NOT_RETRYABLE"


class TestCancelRefund:
    """Tests for RefundService.cancel_refund."""

    def test_cancels_failed_refund(self, failed_refund):
        """Should abandon the refund and keep the note."""
        refund = RefundService.cancel_refund(failed_refund.id, note="Paid back in cash")

        assert refund.status == RefundState.CANCELLED
        assert refund.last_error == "Paid back in cash"

    def test_completed_refund_cannot_be_cancelled(self, completed_refund):
        """Should wrap the FSM error in InvalidStateTransitionError."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            RefundService.cancel_refund(completed_refund.id)

        assert exc_info.value.details["current_state"] == RefundState.COMPLETED


class TestRetryFailedRefunds:
    """Tests for RefundService.retry_failed_refunds."""

    @pytest.fixture(autouse=True)
    def sweep_settings(self, settings):
        settings.REFUND_MAX_RETRIES = 3
        settings.REFUND_RETRY_BASE_DELAY_SECONDS = 5
        settings.REFUND_STALE_PENDING_MINUTES = 10

    def test_retries_failed_refund_past_backoff(self, fake_gateway, db):
        """Should retry failures whose backoff has elapsed."""
        refund = RefundFactory(
            failed=True, failed_at=timezone.now() - timedelta(minutes=5)
        )

        result = RefundService.retry_failed_refunds()

        assert result.attempted == 1
        assert result.succeeded == 1
        refund.refresh_from_db()
        assert refund.status == RefundState.COMPLETED

    def test_skips_failed_refund_within_backoff(self, fake_gateway, db):
        """Should wait for the backoff before retrying."""
        RefundFactory(failed=True, failed_at=timezone.now())

        result = RefundService.retry_failed_refunds()

        assert result.attempted == 0
        assert fake_gateway.call_count == 0

    def test_skips_refunds_at_retry_ceiling(self, fake_gateway, db):
        """Should leave refunds that used up their automatic retries."""
        RefundFactory(
            failed=True,
            retry_count=3,
            failed_at=timezone.now() - timedelta(days=1),
        )

        result = RefundService.retry_failed_refunds()

        assert result.attempted == 0

    def test_skips_non_retryable_failures(self, fake_gateway, db):
        """Should leave permanent failures for manual handling."""
        RefundFactory(
            failed=True,
            is_retryable=False,
            failed_at=timezone.now() - timedelta(days=1),
        )

        assert RefundService.retry_failed_refunds().attempted == 0

    def test_picks_up_stale_pending_refund(self, fake_gateway, db):
        """Should attempt pending refunds nobody processed in time."""
        refund = RefundFactory()
        Refund.objects.filter(pk=refund.pk).update(
            created_at=timezone.now() - timedelta(minutes=30)
        )

        result = RefundService.retry_failed_refunds()

        assert result.succeeded == 1
        refund.refresh_from_db()
        assert refund.status == RefundState.COMPLETED

    def test_leaves_fresh_pending_refund(self, fake_gateway, pending_refund):
        """Should not race the request path on a just-created refund."""
        assert RefundService.retry_failed_refunds().attempted == 0

    def test_releases_stuck_processing_refund(self, fake_gateway, db):
        """Should fail refunds stuck in processing, then retry them later."""
        refund = RefundFactory()
        refund.start_processing()
        refund.save()
        Refund.objects.filter(pk=refund.pk).update(
            last_attempt_at=timezone.now() - timedelta(minutes=30)
        )

        result = RefundService.retry_failed_refunds()

        assert result.released_stuck == 1
        refund.refresh_from_db()
        assert refund.status == RefundState.FAILED
        assert refund.error_code == "ATTEMPT_ABANDONED"
        assert refund.is_retryable is True

    def test_respects_limit(self, fake_gateway, db):
        """Should attempt at most limit refunds."""
        for _ in range(3):
            RefundFactory(failed=True, failed_at=timezone.now() - timedelta(hours=2))

        result = RefundService.retry_failed_refunds(limit=2)

        assert result.attempted == 2


class TestListRefundsForUser:
    """Tests for RefundService.list_refunds_for_user."""

    def test_returns_own_refunds_newest_first(self, db):
        first = RefundFactory()
        second = RefundFactory(
            cancellation__order__user=first.user, completed=True
        )
        RefundFactory()

        refunds, total = RefundService.list_refunds_for_user(first.user)

        assert [r.id for r in refunds] == [second.id, first.id]
        assert total == 2

    def test_status_filter(self, db):
        failed = RefundFactory(failed=True)
        RefundFactory(cancellation__order__user=failed.user, completed=True)

        refunds, total = RefundService.list_refunds_for_user(
            failed.user, status=RefundState.FAILED
        )

        assert [r.id for r in refunds] == [failed.id]
        assert total == 1

    def test_pages(self, db):
        user = UserFactory()
        for _ in range(3):
            RefundFactory(cancellation__order__user=user)

        refunds, total = RefundService.list_refunds_for_user(user, page=2, limit=2)

        assert len(refunds) == 1
        assert total == 3


class TestRefundNotifications:
    """Tests for the notifications queued when a refund settles or fails for good."""

    def test_completion_notifies(
        self, fake_gateway, pending_refund, mock_notification_tasks,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            RefundService.process_refund(pending_refund.id)

        mock_notification_tasks["refund"].assert_called_once_with(
            str(pending_refund.id), "completed"
        )

    def test_permanent_failure_notifies(
        self, fake_gateway, pending_refund, mock_notification_tasks,
        django_capture_on_commit_callbacks,
    ):
        fake_gateway.fail_with(
            NonRetryableGatewayError("amount too large", gateway_code="amount_too_large")
        )

        with django_capture_on_commit_callbacks(execute=True):
            RefundService.process_refund(pending_refund.id)

        mock_notification_tasks["refund"].assert_called_once_with(
            str(pending_refund.id), "failed"
        )

    def test_retryable_failure_waits_for_retries(
        self, fake_gateway, pending_refund, mock_notification_tasks,
        django_capture_on_commit_callbacks,
    ):
        """Should not alarm the customer while automatic retries remain."""
        fake_gateway.fail_with(GatewayTimeoutError("timed out", gateway_code="timeout"))

        with django_capture_on_commit_callbacks(execute=True):
            RefundService.process_refund(pending_refund.id)

        mock_notification_tasks["refund"].assert_not_called()
