"""
Cancellation request handling.

CancellationService.cancel_order() is the single entry point for a
customer cancelling an order. It decides, under a per-order Redis lock,
whether the order can be cancelled and how, records the cancellation,
and for instant cancellations cancels the order and starts recovery.

Flow:
    1. Load the order and authorize the requester
    2. Validate the reason against the customer reason set
    3. Under DistributedLock("cancellation:order:{id}"):
       - reject already cancelled orders and open requests
       - evaluate the policy and compute the refund breakdown
       - instant: cancellation (completed) + order update + refund, atomically
       - approval required: pending cancellation with an approval deadline
    4. After the lock is released, run the RecoveryOrchestrator (instant only)

When the order store does not share the cancellation's transaction
(CANCELLATION_ORDER_STORE_ATOMIC=False) the cancellation is written
first and deleted again if the order update fails.

Usage:
    from cancellations.services import CancellationService

    outcome = CancellationService.cancel_order(
        order_id=order.id,
        requester=request.user,
        reason_category="customer_change_mind",
    )
    outcome.cancellation.status  # "completed" or "pending"
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from django_fsm import can_proceed

from core.exceptions import AuthorizationError, NotFoundError, PersistenceError
from core.services import BaseService
from cancellations.exceptions import (
    AlreadyCancelledError,
    CancellationNotPendingError,
    InvalidReasonError,
    PendingCancellationExistsError,
    PolicyDisallowsError,
)
from cancellations.models import (
    CancellationStatus,
    OPEN_CANCELLATION_STATUSES,
    OrderCancellation,
    RequesterRole,
)
from cancellations.policy import (
    CancellabilityCheck,
    CancellationPolicy,
    RefundBreakdown,
    calculate_refund_amount,
    check_cancellable,
    get_policy,
    is_valid_reason,
)
from cancellations.services.recovery_orchestrator import RecoveryOrchestrator
from cancellations.types import CancellationOutcome, RecoveryResult
from notifications.models import CancellationEvent
from notifications.services import notify_cancellation
from orders.services import OrderService
from payments.locks import DistributedLock
from payments.services import RefundService

if TYPE_CHECKING:
    from authentication.models import User
    from orders.models import Order
    from payments.models import Refund


logger = logging.getLogger(__name__)


def order_lock(order_id: uuid.UUID) -> DistributedLock:
    """Lock serializing cancellation decisions for one order."""
    return DistributedLock(
        f"cancellation:order:{order_id}",
        ttl=settings.CANCELLATION_LOCK_TTL_SECONDS,
    )


class CancellationService(BaseService):
    """
    Service for customer cancellation requests.

    Safety Guarantees:
        - One decision per order at a time (Redis lock)
        - At most one open cancellation per order (partial unique constraint)
        - The order is only cancelled together with a completed cancellation
        - Recovery failures never undo the cancellation
    """

    # =========================================================================
    # Cancel
    # =========================================================================

    @classmethod
    def cancel_order(
        cls,
        order_id: uuid.UUID,
        requester: User,
        reason_category: str,
        reason_detail: str = "",
    ) -> CancellationOutcome:
        """
        Cancel an order, or request its cancellation from the restaurant.

        Args:
            order_id: Order to cancel
            requester: Customer who placed the order
            reason_category: One of the customer reason categories
            reason_detail: Optional free text

        Returns:
            CancellationOutcome with the cancellation, the refund (instant
            cancellations with a positive refund) and the recovery result
            (instant cancellations)

        Raises:
            NotFoundError: Unknown order
            AuthorizationError: Requester did not place the order
            InvalidReasonError: Reason not available to customers
            AlreadyCancelledError: Order already cancelled
            PendingCancellationExistsError: A request is already open
            PolicyDisallowsError: The order's status does not allow cancelling
            LockAcquisitionError: Another request holds the order lock
            PersistenceError: Compensation failed after a partial write
        """
        log = cls.get_logger()
        order = OrderService.get_order(order_id)

        if order.user_id != requester.id:
            raise AuthorizationError(
                "You can only cancel your own orders",
                error_code="NOT_ORDER_OWNER",
                details={"order_id": str(order_id)},
            )

        if not is_valid_reason(reason_category, RequesterRole.CUSTOMER):
            raise InvalidReasonError(
                f"'{reason_category}' is not a valid cancellation reason",
                details={"reason_category": reason_category},
            )

        refund: Refund | None = None
        with order_lock(order.id):
            # Re-read under the lock; the status decides the policy
            order = OrderService.get_order(order_id)
            policy = cls._check_can_request(order)
            breakdown = calculate_refund_amount(
                order.total_amount,
                order.delivery_fee,
                policy.refund_rate_percent,
                policy.refund_delivery_fee,
            )

            try:
                if policy.is_instant:
                    cancellation, refund = cls._cancel_instantly(
                        order, requester, reason_category, reason_detail,
                        policy, breakdown,
                    )
                else:
                    cancellation = cls._request_approval(
                        order, requester, reason_category, reason_detail,
                        policy, breakdown,
                    )
            except IntegrityError as e:
                raise PendingCancellationExistsError(
                    "A cancellation request for this order is already open",
                    details={"order_id": str(order.id)},
                ) from e

        log.info(
            "Cancellation recorded",
            extra={
                "cancellation_id": str(cancellation.id),
                "order_id": str(order.id),
                "cancel_type": cancellation.cancel_type,
                "status": cancellation.status,
                "refund_amount": cancellation.refund_amount,
                "refund_id": str(refund.id) if refund else None,
            },
        )

        if cancellation.status == CancellationStatus.COMPLETED:
            return cls.finish_completed(cancellation, refund)

        notify_cancellation(cancellation.id, CancellationEvent.REQUESTED)
        return CancellationOutcome(cancellation=cancellation)

    @classmethod
    def _check_can_request(cls, order: Order) -> CancellationPolicy:
        """Reject cancelled orders, open requests and disallowed statuses."""
        if order.is_cancelled:
            raise AlreadyCancelledError(
                "The order is already cancelled",
                details={"order_id": str(order.id)},
            )

        if OrderCancellation.objects.filter(
            order_id=order.id, status__in=OPEN_CANCELLATION_STATUSES
        ).exists():
            raise PendingCancellationExistsError(
                "A cancellation request for this order is already open",
                details={"order_id": str(order.id)},
            )

        policy = get_policy(order.status)
        if not policy.can_cancel:
            raise PolicyDisallowsError(
                policy.message,
                details={"order_id": str(order.id), "order_status": order.status},
            )
        return policy

    @classmethod
    def _build_cancellation(
        cls,
        order: Order,
        requester: User,
        reason_category: str,
        reason_detail: str,
        policy: CancellationPolicy,
        breakdown: RefundBreakdown,
    ) -> OrderCancellation:
        return OrderCancellation(
            order=order,
            requested_by=requester,
            requester_role=RequesterRole.CUSTOMER,
            cancel_type=policy.cancel_type,
            reason_category=reason_category,
            reason_detail=reason_detail or "",
            refund_amount=breakdown.total,
            refund_rate=policy.refund_rate,
            menu_refund_amount=breakdown.menu,
            delivery_refund_amount=breakdown.delivery,
            can_refund_coupon=policy.can_refund_coupon,
            can_refund_points=policy.can_refund_points,
        )

    @classmethod
    def _cancel_instantly(
        cls,
        order: Order,
        requester: User,
        reason_category: str,
        reason_detail: str,
        policy: CancellationPolicy,
        breakdown: RefundBreakdown,
    ) -> tuple[OrderCancellation, Refund | None]:
        """Write the completed cancellation, cancel the order, create the refund."""
        now = timezone.now()
        cancellation = cls._build_cancellation(
            order, requester, reason_category, reason_detail, policy, breakdown
        )
        cancellation.status = CancellationStatus.COMPLETED
        cancellation.approved_by = requester
        cancellation.approved_at = now
        cancellation.completed_at = now
        observed_status = order.status

        if settings.CANCELLATION_ORDER_STORE_ATOMIC:
            with cls.atomic():
                cancellation.save()
                OrderService.mark_cancelled(
                    order, reason_category, expected_status=observed_status
                )
                refund = RefundService.create_refund(cancellation)
            return cancellation, refund

        with transaction.atomic():
            cancellation.save()
        try:
            OrderService.mark_cancelled(
                order, reason_category, expected_status=observed_status
            )
        except Exception as e:
            cls._compensate(cancellation, e)
            raise
        return cancellation, RefundService.create_refund(cancellation)

    @classmethod
    def _compensate(cls, cancellation: OrderCancellation, cause: Exception) -> None:
        """
        Delete a cancellation whose order update failed.

        Raises:
            PersistenceError: If the delete fails too; the cancellation
                row then exists while the order is not cancelled
        """
        log = cls.get_logger()
        log_context = {
            "cancellation_id": str(cancellation.id),
            "order_id": str(cancellation.order_id),
            "cause": type(cause).__name__,
        }
        try:
            with transaction.atomic():
                cancellation.delete()
        except DatabaseError as e:
            log.critical(
                "Compensation failed: cancellation recorded but order not cancelled",
                extra=log_context,
                exc_info=True,
            )
            raise PersistenceError(
                "Cancellation could not be rolled back after the order update failed",
                error_code="COMPENSATION_FAILED",
                details={
                    "cancellation_id": log_context["cancellation_id"],
                    "order_id": log_context["order_id"],
                },
            ) from e

        log.warning("Cancellation rolled back after order update failed", extra=log_context)

    @classmethod
    def _request_approval(
        cls,
        order: Order,
        requester: User,
        reason_category: str,
        reason_detail: str,
        policy: CancellationPolicy,
        breakdown: RefundBreakdown,
    ) -> OrderCancellation:
        """Write a pending cancellation for the restaurant to decide on."""
        cancellation = cls._build_cancellation(
            order, requester, reason_category, reason_detail, policy, breakdown
        )
        if policy.approval_timeout_minutes is not None:
            cancellation.approval_deadline = timezone.now() + timedelta(
                minutes=policy.approval_timeout_minutes
            )
        with transaction.atomic():
            cancellation.save()
        return cancellation

    @classmethod
    def finish_completed(
        cls,
        cancellation: OrderCancellation,
        refund: Refund | None,
        event: str = CancellationEvent.INSTANT_COMPLETED,
    ) -> CancellationOutcome:
        """
        Run recovery for a completed cancellation and report where it ended.

        Recovery works on its own copies of the rows, so the cancellation
        and refund are reloaded before they are returned.
        """
        recovery = cls.run_recovery(cancellation)
        cancellation.refresh_from_db()
        if refund is not None:
            refund.refresh_from_db()
        notify_cancellation(cancellation.id, event)
        return CancellationOutcome(
            cancellation=cancellation,
            refund=refund,
            recovery=recovery,
        )

    @classmethod
    def run_recovery(cls, cancellation: OrderCancellation) -> RecoveryResult | None:
        """
        Run recovery for a just-completed cancellation.

        Any error is logged and left to the recovery sweep; the
        cancellation itself is already committed.
        """
        try:
            return RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)
        except Exception:
            cls.get_logger().exception(
                "Recovery failed after cancellation",
                extra={
                    "cancellation_id": str(cancellation.id),
                    "order_id": str(cancellation.order_id),
                },
            )
            return None

    # =========================================================================
    # Withdraw
    # =========================================================================

    @classmethod
    def withdraw(
        cls, cancellation_id: uuid.UUID, requester: User
    ) -> OrderCancellation:
        """
        Withdraw a pending request. Only the customer who made it may.

        The withdrawn request no longer counts as open, so the customer can
        ask again later.

        Raises:
            NotFoundError: Unknown cancellation
            AuthorizationError: NOT_REQUESTER if someone else made the request
            CancellationNotPendingError: Already decided or withdrawn
        """
        cancellation = OrderCancellation.objects.filter(id=cancellation_id).first()
        if cancellation is None:
            raise NotFoundError(
                f"Cancellation {cancellation_id} not found",
                error_code="CANCELLATION_NOT_FOUND",
                details={"cancellation_id": str(cancellation_id)},
            )
        if cancellation.requested_by_id != requester.id:
            raise AuthorizationError(
                "Only the customer who made the request can withdraw it",
                error_code="NOT_REQUESTER",
                details={"cancellation_id": str(cancellation_id)},
            )

        with cls.atomic():
            cancellation = OrderCancellation.objects.select_for_update().get(
                id=cancellation_id
            )
            if not can_proceed(cancellation.withdraw):
                raise CancellationNotPendingError(
                    f"Cancellation is {cancellation.status}, not pending",
                    details={
                        "cancellation_id": str(cancellation.id),
                        "status": cancellation.status,
                    },
                )
            cancellation.withdraw()
            cancellation.save()

        cls.get_logger().info(
            "Cancellation withdrawn",
            extra={
                "cancellation_id": str(cancellation.id),
                "order_id": str(cancellation.order_id),
            },
        )
        notify_cancellation(cancellation.id, CancellationEvent.WITHDRAWN)
        return cancellation

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def _get_own_order(cls, order_id: uuid.UUID, requester: User) -> Order:
        order = OrderService.get_order(order_id)
        if order.user_id != requester.id and not requester.is_admin:
            raise AuthorizationError(
                "You can only view cancellations of your own orders",
                error_code="NOT_ORDER_OWNER",
                details={"order_id": str(order_id)},
            )
        return order

    @classmethod
    def get_cancellation_history(
        cls, order_id: uuid.UUID, requester: User
    ) -> list[OrderCancellation]:
        """Cancellations of an order with their refunds, newest first."""
        order = cls._get_own_order(order_id, requester)
        return list(
            OrderCancellation.objects.filter(order_id=order.id)
            .prefetch_related("refunds")
            .order_by("-created_at")
        )

    @classmethod
    def check(cls, order_id: uuid.UUID, requester: User) -> CancellabilityCheck:
        """Policy, estimated refund and open request for the cancel screen."""
        order = cls._get_own_order(order_id, requester)
        return check_cancellable(order)

    @classmethod
    def get_customer_cancellations(
        cls,
        user: User,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[OrderCancellation]:
        """The user's own cancellation requests, newest first."""
        queryset = (
            OrderCancellation.objects.filter(requested_by=user)
            .select_related("order")
            .prefetch_related("refunds")
            .order_by("-created_at")
        )
        if status:
            queryset = queryset.filter(status=status)
        return list(queryset[offset : offset + limit])
