"""
Tests for ApprovalService.

Tests cover:
- Owner and admin approval cancelling the order and refunding
- Who may decide on a request
- Rejection
- Auto-approval once the deadline passes
- Owner queries (pending list, stats)
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from cancellations.exceptions import (
    ApprovalNotAllowedError,
    CancellationNotPendingError,
)
from cancellations.models import (
    CancellationReason,
    CancellationStatus,
    OrderCancellation,
    RequesterRole,
)
from cancellations.services import ApprovalService
from cancellations.tests.factories import OrderCancellationFactory
from core.exceptions import NotFoundError, StateConflictError, ValidationError
from orders.models import OrderStatus
from orders.tests.factories import OrderFactory, RestaurantFactory
from payments.models import Refund
from payments.state_machines import RefundState


@pytest.fixture
def pending(db):
    """Pending 17000 request for a preparing order, due in 10 minutes."""
    return OrderCancellationFactory(preparing=True)


@pytest.fixture
def owner(pending):
    return pending.order.restaurant.owner


class TestApprove:
    """Tests for ApprovalService.approve."""

    def test_owner_approval_cancels_and_refunds(self, pending, owner, fake_gateway):
        outcome = ApprovalService.approve(pending.id, approver=owner)

        cancellation = outcome.cancellation
        assert cancellation.status == CancellationStatus.COMPLETED
        assert cancellation.approved_by == owner
        assert cancellation.auto_approved is False
        assert cancellation.completed_at is not None

        order = pending.order
        order.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_reason == CancellationReason.CUSTOMER_CHANGE_MIND

        assert outcome.refund.amount == 17000
        refund = Refund.objects.get(cancellation=pending)
        assert refund.status == RefundState.COMPLETED
        assert outcome.recovery.refund is True
        assert fake_gateway.call_count == 1

    def test_outcome_reports_refund_after_recovery(self, pending, owner):
        """Should return the refund as recovery left it, not as created."""
        outcome = ApprovalService.approve(pending.id, approver=owner)

        stored = Refund.objects.get(cancellation=pending)
        assert outcome.refund.status == stored.status == RefundState.COMPLETED
        assert outcome.refund.version == stored.version

    def test_admin_can_approve(self, pending, admin_user):
        outcome = ApprovalService.approve(pending.id, approver=admin_user)

        assert outcome.cancellation.status == CancellationStatus.COMPLETED
        assert outcome.cancellation.approved_by == admin_user

    def test_zero_refund_approval(self, db, fake_gateway):
        """Should cancel a delivering order without creating a refund."""
        cancellation = OrderCancellationFactory(
            preparing=True,
            order=OrderFactory(status=OrderStatus.DELIVERING),
            menu_refund_amount=0,
            delivery_refund_amount=0,
            refund_rate=0,
            approval_deadline=None,
        )

        outcome = ApprovalService.approve(
            cancellation.id, approver=cancellation.order.restaurant.owner
        )

        assert outcome.refund is None
        assert outcome.recovery.refund is None
        assert not Refund.objects.exists()
        assert fake_gateway.call_count == 0

    def test_requester_cannot_approve_own_request(self, db):
        """Should refuse an owner deciding on a request they made."""
        restaurant = RestaurantFactory()
        cancellation = OrderCancellationFactory(
            preparing=True,
            order=OrderFactory(restaurant=restaurant, status=OrderStatus.PREPARING),
            requested_by=restaurant.owner,
            requester_role=RequesterRole.OWNER,
            reason_category=CancellationReason.RESTAURANT_OUT_OF_STOCK,
        )

        with pytest.raises(ApprovalNotAllowedError) as exc_info:
            ApprovalService.approve(cancellation.id, approver=restaurant.owner)

        assert exc_info.value.error_code == "APPROVAL_NOT_ALLOWED"

    def test_other_owner_cannot_approve(self, pending):
        other_owner = UserFactory(role=UserRole.OWNER)

        with pytest.raises(ApprovalNotAllowedError) as exc_info:
            ApprovalService.approve(pending.id, approver=other_owner)

        assert exc_info.value.http_status == 403
        pending.refresh_from_db()
        assert pending.status == CancellationStatus.PENDING

    def test_rejected_request_cannot_be_approved(self, pending, owner):
        ApprovalService.reject(pending.id, approver=owner, reason="Already cooked")

        with pytest.raises(CancellationNotPendingError) as exc_info:
            ApprovalService.approve(pending.id, approver=owner)

        assert exc_info.value.error_code == "CANCELLATION_NOT_PENDING"

    def test_unknown_cancellation(self, db, admin_user):
        with pytest.raises(NotFoundError) as exc_info:
            ApprovalService.approve(uuid.uuid4(), approver=admin_user)

        assert exc_info.value.error_code == "CANCELLATION_NOT_FOUND"

    def test_order_delivered_meanwhile_rolls_back(self, pending, owner):
        """Should leave the request pending when the order already finished."""
        pending.order.status = OrderStatus.DELIVERED
        pending.order.save()

        with pytest.raises(StateConflictError) as exc_info:
            ApprovalService.approve(pending.id, approver=owner)

        assert exc_info.value.error_code == "ORDER_STATUS_CHANGED"
        pending.refresh_from_db()
        assert pending.status == CancellationStatus.PENDING
        assert pending.approved_at is None
        assert not Refund.objects.exists()


class TestReject:
    """Tests for ApprovalService.reject."""

    def test_reject_leaves_order_alone(self, pending, owner, fake_gateway):
        cancellation = ApprovalService.reject(
            pending.id, approver=owner, reason="  Already on its way "
        )

        assert cancellation.status == CancellationStatus.REJECTED
        assert cancellation.rejection_reason == "Already on its way"
        assert cancellation.rejected_at is not None
        pending.order.refresh_from_db()
        assert pending.order.status == OrderStatus.PREPARING
        assert not Refund.objects.exists()
        assert fake_gateway.call_count == 0

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_is_required(self, pending, owner, reason):
        with pytest.raises(ValidationError) as exc_info:
            ApprovalService.reject(pending.id, approver=owner, reason=reason)

        assert exc_info.value.error_code == "REJECTION_REASON_REQUIRED"

    def test_customer_cannot_reject(self, pending):
        with pytest.raises(ApprovalNotAllowedError):
            ApprovalService.reject(pending.id, approver=pending.order.user, reason="no")

    def test_completed_request_cannot_be_rejected(self, db):
        cancellation = OrderCancellationFactory(completed=True)

        with pytest.raises(CancellationNotPendingError):
            ApprovalService.reject(
                cancellation.id,
                approver=cancellation.order.restaurant.owner,
                reason="Too late",
            )


class TestAutoApproval:
    """Tests for process_auto_approvals."""

    def test_approves_after_deadline(self, pending, fake_gateway):
        with freeze_time(timezone.now() + timedelta(minutes=11)):
            result = ApprovalService.process_auto_approvals()

        assert result == {"approved": 1, "rejected": 0, "failed": 0}
        pending.refresh_from_db()
        assert pending.status == CancellationStatus.COMPLETED
        assert pending.auto_approved is True
        assert pending.approved_by is None
        assert Refund.objects.get(cancellation=pending).status == RefundState.COMPLETED

    def test_waits_for_deadline(self, pending):
        result = ApprovalService.process_auto_approvals()

        assert result == {"approved": 0, "rejected": 0, "failed": 0}
        pending.refresh_from_db()
        assert pending.status == CancellationStatus.PENDING

    def test_requests_without_deadline_wait_for_owner(self, db):
        """Should never auto-approve a request without an approval deadline."""
        OrderCancellationFactory(preparing=True, approval_deadline=None)

        with freeze_time(timezone.now() + timedelta(days=1)):
            result = ApprovalService.process_auto_approvals()

        assert result["approved"] == 0

    def test_rejects_requests_for_delivered_orders(self, pending):
        """Should close a request whose order was delivered before the deadline."""
        pending.order.status = OrderStatus.DELIVERED
        pending.order.save()

        with freeze_time(timezone.now() + timedelta(minutes=11)):
            result = ApprovalService.process_auto_approvals()

        assert result == {"approved": 0, "rejected": 1, "failed": 0}
        pending.refresh_from_db()
        assert pending.status == CancellationStatus.REJECTED
        assert pending.rejected_by is None
        assert "delivered" in pending.rejection_reason
        assert not Refund.objects.filter(cancellation=pending).exists()

    def test_delivered_order_frees_open_slot(self, pending):
        """Should not leave the closed request blocking later sweeps."""
        pending.order.status = OrderStatus.DELIVERED
        pending.order.save()

        with freeze_time(timezone.now() + timedelta(minutes=11)):
            ApprovalService.process_auto_approvals()
            second = ApprovalService.process_auto_approvals()

        assert second == {"approved": 0, "rejected": 0, "failed": 0}
        assert not OrderCancellation.objects.filter(
            order=pending.order, status__in=[CancellationStatus.PENDING]
        ).exists()

    def test_counts_failures(self, pending, mocker):
        mocker.patch.object(
            ApprovalService,
            "approve",
            side_effect=NotFoundError("gone", error_code="CANCELLATION_NOT_FOUND"),
        )

        with freeze_time(timezone.now() + timedelta(minutes=11)):
            result = ApprovalService.process_auto_approvals()

        assert result == {"approved": 0, "rejected": 0, "failed": 1}

    def test_respects_limit(self, db):
        deadline = timezone.now() - timedelta(minutes=1)
        for _ in range(3):
            OrderCancellationFactory(preparing=True, approval_deadline=deadline)

        result = ApprovalService.process_auto_approvals(limit=2)

        assert result["approved"] == 2
        assert (
            OrderCancellation.objects.filter(status=CancellationStatus.PENDING).count()
            == 1
        )


class TestOwnerQueries:
    """Tests for get_pending_approvals and get_cancellation_stats."""

    def test_pending_for_own_restaurants_only(self, pending, owner):
        OrderCancellationFactory(preparing=True)

        result = ApprovalService.get_pending_approvals(owner)

        assert result == [pending]

    def test_admin_sees_all_pending(self, pending, admin_user):
        OrderCancellationFactory(preparing=True)

        assert len(ApprovalService.get_pending_approvals(admin_user)) == 2

    def test_most_urgent_first(self, db):
        restaurant = RestaurantFactory()
        later = OrderCancellationFactory(
            preparing=True,
            order=OrderFactory(restaurant=restaurant, status=OrderStatus.PREPARING),
            approval_deadline=timezone.now() + timedelta(minutes=9),
        )
        sooner = OrderCancellationFactory(
            preparing=True,
            order=OrderFactory(restaurant=restaurant, status=OrderStatus.PREPARING),
            approval_deadline=timezone.now() + timedelta(minutes=2),
        )

        assert ApprovalService.get_pending_approvals(restaurant.owner) == [
            sooner,
            later,
        ]

    def test_stats(self, db, fake_gateway):
        restaurant = RestaurantFactory()

        def request():
            return OrderCancellationFactory(
                preparing=True,
                order=OrderFactory(restaurant=restaurant, status=OrderStatus.PREPARING),
            )

        ApprovalService.approve(request().id, approver=restaurant.owner)
        ApprovalService.reject(request().id, approver=restaurant.owner, reason="Busy")
        request()
        auto = request()
        ApprovalService.approve(auto.id, approver=None, auto=True)
        OrderCancellationFactory(
            completed=True,
            order=OrderFactory(restaurant=restaurant, status=OrderStatus.CANCELLED),
        )

        stats = ApprovalService.get_cancellation_stats(restaurant.owner)

        assert stats == {
            "total_requests": 4,
            "approved": 2,
            "rejected": 1,
            "auto_approved": 1,
            "pending": 1,
        }

    def test_stats_date_range(self, pending, owner):
        today = timezone.now().date()

        assert ApprovalService.get_cancellation_stats(
            owner, date_from=today, date_to=today
        )["total_requests"] == 1
        assert ApprovalService.get_cancellation_stats(
            owner, date_from=today + timedelta(days=1)
        )["total_requests"] == 0


class TestDecisionNotifications:
    """Tests for the notifications queued by owner and system decisions."""

    def test_approval_notifies_customer(
        self, pending, owner, mock_notification_tasks, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ApprovalService.approve(pending.id, approver=owner)

        mock_notification_tasks["cancellation"].assert_called_once_with(
            str(pending.id), "approved"
        )

    def test_auto_approval_uses_its_own_event(
        self, pending, mock_notification_tasks, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with freeze_time(timezone.now() + timedelta(minutes=11)):
                ApprovalService.process_auto_approvals()

        mock_notification_tasks["cancellation"].assert_called_once_with(
            str(pending.id), "auto_approved"
        )

    def test_rejection_notifies_customer(
        self, pending, owner, mock_notification_tasks, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            ApprovalService.reject(pending.id, approver=owner, reason="Already cooked")

        mock_notification_tasks["cancellation"].assert_called_once_with(
            str(pending.id), "rejected"
        )

    def test_rolled_back_approval_notifies_nobody(
        self, pending, owner, mock_notification_tasks, django_capture_on_commit_callbacks
    ):
        pending.order.status = OrderStatus.DELIVERED
        pending.order.save()

        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(StateConflictError):
                ApprovalService.approve(pending.id, approver=owner)

        mock_notification_tasks["cancellation"].assert_not_called()
