"""
Restaurant-side decisions on approval-required cancellations.

Orders past the point of free cancellation (preparing onwards) need the
restaurant owner to agree. The owner (or an admin) approves or rejects
the pending request; requests with an approval deadline are
auto-approved by a periodic task once it passes.

Approval cancels the order, creates the refund and completes the
cancellation in one transaction under the same per-order lock used by
CancellationService, then runs recovery.

Usage:
    from cancellations.services import ApprovalService

    outcome = ApprovalService.approve(cancellation_id, approver=request.user)
    ApprovalService.reject(cancellation_id, approver=request.user, reason="Already cooked")
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import TYPE_CHECKING

from django.db.models import Count, Q
from django.utils import timezone
from django_fsm import can_proceed

from core.exceptions import (
    BaseApplicationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from core.services import BaseService
from cancellations.exceptions import (
    ApprovalNotAllowedError,
    CancellationNotPendingError,
)
from cancellations.models import CancellationStatus, CancelType, OrderCancellation
from cancellations.services.cancellation_service import (
    CancellationService,
    order_lock,
)
from cancellations.types import CancellationOutcome
from notifications.models import CancellationEvent
from notifications.services import notify_cancellation
from orders.services import OrderService
from payments.services import RefundService

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


class ApprovalService(BaseService):
    """Service for approving and rejecting cancellation requests."""

    @classmethod
    def _get_cancellation(cls, cancellation_id: uuid.UUID) -> OrderCancellation:
        cancellation = (
            OrderCancellation.objects.select_related("order__restaurant")
            .filter(id=cancellation_id)
            .first()
        )
        if cancellation is None:
            raise NotFoundError(
                f"Cancellation {cancellation_id} not found",
                error_code="CANCELLATION_NOT_FOUND",
                details={"cancellation_id": str(cancellation_id)},
            )
        return cancellation

    @classmethod
    def _ensure_can_decide(cls, cancellation: OrderCancellation, user: User) -> None:
        """
        The restaurant owner or an admin may decide; the requester never may.

        Raises:
            ApprovalNotAllowedError: Otherwise
        """
        if cancellation.requested_by_id == user.id:
            raise ApprovalNotAllowedError(
                "You cannot decide on your own cancellation request",
                details={"cancellation_id": str(cancellation.id)},
            )
        if cancellation.order.restaurant.owner_id != user.id and not user.is_admin:
            raise ApprovalNotAllowedError(
                "Only the restaurant owner can decide on this cancellation",
                details={"cancellation_id": str(cancellation.id)},
            )

    @staticmethod
    def _not_pending(cancellation: OrderCancellation) -> CancellationNotPendingError:
        return CancellationNotPendingError(
            f"Cancellation is {cancellation.status}, not pending",
            details={
                "cancellation_id": str(cancellation.id),
                "status": cancellation.status,
            },
        )

    # =========================================================================
    # Decisions
    # =========================================================================

    @classmethod
    def approve(
        cls,
        cancellation_id: uuid.UUID,
        approver: User | None,
        auto: bool = False,
    ) -> CancellationOutcome:
        """
        Approve a pending cancellation and cancel the order.

        Args:
            cancellation_id: Pending cancellation
            approver: Restaurant owner or admin (None when auto)
            auto: Approval by deadline rather than by a person

        Returns:
            CancellationOutcome with the completed cancellation, its
            refund (if any) and the recovery result

        Raises:
            NotFoundError: Unknown cancellation
            ApprovalNotAllowedError: Approver may not decide
            CancellationNotPendingError: Already decided
            StateConflictError: ORDER_STATUS_CHANGED if the order reached
                a terminal status in the meantime
        """
        cancellation = cls._get_cancellation(cancellation_id)
        if not auto:
            cls._ensure_can_decide(cancellation, approver)

        with order_lock(cancellation.order_id):
            with cls.atomic():
                cancellation = OrderCancellation.objects.select_for_update().get(
                    id=cancellation_id
                )
                if not can_proceed(cancellation.approve):
                    raise cls._not_pending(cancellation)

                cancellation.approve(approver=approver, auto=auto)
                OrderService.mark_cancelled(
                    cancellation.order, cancellation.reason_category
                )
                cancellation.complete()
                cancellation.save()
                refund = RefundService.create_refund(cancellation)

        cls.get_logger().info(
            "Cancellation approved",
            extra={
                "cancellation_id": str(cancellation.id),
                "order_id": str(cancellation.order_id),
                "approver_id": str(approver.id) if approver else None,
                "auto_approved": auto,
                "refund_amount": cancellation.refund_amount,
            },
        )

        event = CancellationEvent.AUTO_APPROVED if auto else CancellationEvent.APPROVED
        return CancellationService.finish_completed(cancellation, refund, event=event)

    @classmethod
    def reject(
        cls,
        cancellation_id: uuid.UUID,
        approver: User,
        reason: str,
    ) -> OrderCancellation:
        """
        Reject a pending cancellation. The order is left as it is.

        Raises:
            ValidationError: Empty reason
            NotFoundError: Unknown cancellation
            ApprovalNotAllowedError: Approver may not decide
            CancellationNotPendingError: Already decided
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(
                "A rejection reason is required",
                error_code="REJECTION_REASON_REQUIRED",
            )

        cancellation = cls._get_cancellation(cancellation_id)
        cls._ensure_can_decide(cancellation, approver)

        with cls.atomic():
            cancellation = OrderCancellation.objects.select_for_update().get(
                id=cancellation_id
            )
            if not can_proceed(cancellation.reject):
                raise cls._not_pending(cancellation)
            cancellation.reject(rejected_by=approver, reason=reason)
            cancellation.save()

        cls.get_logger().info(
            "Cancellation rejected",
            extra={
                "cancellation_id": str(cancellation.id),
                "order_id": str(cancellation.order_id),
                "approver_id": str(approver.id),
            },
        )
        notify_cancellation(cancellation.id, CancellationEvent.REJECTED)
        return cancellation

    @classmethod
    def reject_as_system(
        cls, cancellation_id: uuid.UUID, reason: str
    ) -> OrderCancellation | None:
        """
        Close a pending request nobody can approve any more.

        Returns None if the request was decided in the meantime.
        """
        with cls.atomic():
            cancellation = OrderCancellation.objects.select_for_update().get(
                id=cancellation_id
            )
            if not can_proceed(cancellation.reject):
                return None
            cancellation.reject(rejected_by=None, reason=reason)
            cancellation.save()

        cls.get_logger().info(
            "Cancellation rejected by system",
            extra={
                "cancellation_id": str(cancellation.id),
                "order_id": str(cancellation.order_id),
                "reason": reason,
            },
        )
        notify_cancellation(cancellation.id, CancellationEvent.REJECTED)
        return cancellation

    @classmethod
    def process_auto_approvals(cls, limit: int = 50) -> dict[str, int]:
        """
        Approve pending cancellations whose approval deadline has passed.

        A request whose order already reached a terminal status (delivered,
        or cancelled some other way) cannot be approved; it is rejected by
        the system so it stops holding the order's open slot.
        """
        due_ids = list(
            OrderCancellation.objects.filter(
                status=CancellationStatus.PENDING,
                approval_deadline__lte=timezone.now(),
            )
            .order_by("approval_deadline")
            .values_list("id", flat=True)[:limit]
        )

        approved = 0
        rejected = 0
        failed = 0
        for cancellation_id in due_ids:
            try:
                cls.approve(cancellation_id, approver=None, auto=True)
            except StateConflictError as e:
                if e.error_code != "ORDER_STATUS_CHANGED":
                    failed += 1
                    cls._log_auto_approval_failure(cancellation_id, e)
                    continue
                current_status = e.details.get("current_status")
                if cls.reject_as_system(
                    cancellation_id,
                    reason=f"Order was already {current_status} when the "
                    "approval deadline passed",
                ):
                    rejected += 1
                continue
            except BaseApplicationError as e:
                failed += 1
                cls._log_auto_approval_failure(cancellation_id, e)
                continue
            approved += 1

        if due_ids:
            cls.get_logger().info(
                "Auto-approval sweep finished",
                extra={"approved": approved, "rejected": rejected, "failed": failed},
            )
        return {"approved": approved, "rejected": rejected, "failed": failed}

    @classmethod
    def _log_auto_approval_failure(
        cls, cancellation_id: uuid.UUID, error: BaseApplicationError
    ) -> None:
        cls.get_logger().warning(
            "Auto-approval failed",
            extra={
                "cancellation_id": str(cancellation_id),
                "error_code": error.error_code,
            },
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def _for_owner(cls, owner: User):
        queryset = OrderCancellation.objects.select_related(
            "order", "order__restaurant", "requested_by"
        )
        if owner.is_admin:
            return queryset
        return queryset.filter(order__restaurant__owner=owner)

    @classmethod
    def get_pending_approvals(cls, owner: User) -> list[OrderCancellation]:
        """Pending requests for the owner's restaurants, most urgent first."""
        return list(
            cls._for_owner(owner)
            .filter(status=CancellationStatus.PENDING)
            .order_by("approval_deadline", "created_at")
        )

    @classmethod
    def get_cancellation_stats(
        cls,
        owner: User,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> dict[str, int]:
        """Counts of approval-required requests for the owner's restaurants."""
        queryset = cls._for_owner(owner).filter(
            cancel_type=CancelType.APPROVAL_REQUIRED
        )
        if date_from is not None:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to is not None:
            queryset = queryset.filter(created_at__date__lte=date_to)

        return queryset.aggregate(
            total_requests=Count("id"),
            approved=Count(
                "id",
                filter=Q(
                    status__in=[
                        CancellationStatus.APPROVED,
                        CancellationStatus.COMPLETED,
                    ]
                ),
            ),
            rejected=Count("id", filter=Q(status=CancellationStatus.REJECTED)),
            auto_approved=Count("id", filter=Q(auto_approved=True)),
            pending=Count("id", filter=Q(status=CancellationStatus.PENDING)),
        )
