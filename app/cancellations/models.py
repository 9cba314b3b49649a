"""
OrderCancellation model: the auditable record of a cancellation request.

An instant cancellation is written directly as COMPLETED. An
approval-required cancellation starts PENDING and is decided by the
restaurant owner (or auto-approved once approval_deadline passes).

Usage:
    from cancellations.models import CancellationStatus, OrderCancellation

    cancellation.approve(approver=owner)   # pending -> approved
    cancellation.complete()                # approved -> completed
    cancellation.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class CancelType(models.TextChoices):
    INSTANT = "instant", "Instant"
    APPROVAL_REQUIRED = "approval_required", "Approval Required"


class CancellationStatus(models.TextChoices):
    """
    Cancellation lifecycle.

    State Flow:
        PENDING -> APPROVED -> COMPLETED
        PENDING -> REJECTED
        PENDING -> WITHDRAWN
        (instant cancellations are created COMPLETED)
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"
    WITHDRAWN = "withdrawn", "Withdrawn"


# Statuses that block another cancellation request for the same order
OPEN_CANCELLATION_STATUSES = (CancellationStatus.PENDING, CancellationStatus.APPROVED)


class RequesterRole(models.TextChoices):
    CUSTOMER = "customer", "Customer"
    OWNER = "owner", "Restaurant Owner"
    RIDER = "rider", "Rider"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


class CancellationReason(models.TextChoices):
    CUSTOMER_CHANGE_MIND = "customer_change_mind", "Changed my mind"
    CUSTOMER_WRONG_ORDER = "customer_wrong_order", "Ordered the wrong items"
    CUSTOMER_DUPLICATE_ORDER = "customer_duplicate_order", "Duplicate order"
    RESTAURANT_CLOSED = "restaurant_closed", "Restaurant closed"
    RESTAURANT_OUT_OF_STOCK = "restaurant_out_of_stock", "Out of stock"
    RESTAURANT_TOO_BUSY = "restaurant_too_busy", "Restaurant too busy"
    DELIVERY_ISSUE = "delivery_issue", "Delivery issue"
    SYSTEM_ERROR = "system_error", "System error"
    OTHER = "other", "Other"


class OrderCancellation(UUIDPrimaryKeyMixin, BaseModel):
    """
    A request to cancel an order, and what it refunds.

    Fields:
        order: Order being cancelled
        requested_by / requester_role: Who asked, in which capacity
        cancel_type: Instant or approval-required (from the policy)
        status: Current FSM state
        reason_category / reason_detail: Why
        refund_amount: menu_refund_amount + delivery_refund_amount
        refund_rate: Fraction of the menu subtotal refunded (0.0 - 1.0)
        can_refund_coupon / can_refund_points: Which ledgers the policy restores
        coupon_refunded / points_refunded: Recovery progress flags
        approved_by / approved_at / auto_approved: Approval decision
        approval_deadline: When a pending request is auto-approved
        rejected_by / rejected_at / rejection_reason: Rejection decision
        withdrawn_at: When the customer withdrew a pending request
        completed_at: When the order was cancelled
        recovery_attempts / last_recovery_at: Recovery bookkeeping

    Constraints:
        - at most one pending or approved cancellation per order
        - refund_amount equals menu + delivery refund
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="cancellations",
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requested_cancellations",
    )
    requester_role = models.CharField(
        max_length=20,
        choices=RequesterRole.choices,
        default=RequesterRole.CUSTOMER,
    )
    cancel_type = models.CharField(max_length=20, choices=CancelType.choices)
    status = FSMField(
        default=CancellationStatus.PENDING,
        choices=CancellationStatus.choices,
        db_index=True,
    )

    reason_category = models.CharField(
        max_length=50,
        choices=CancellationReason.choices,
    )
    reason_detail = models.TextField(blank=True, default="")

    # ==========================================================================
    # Refund
    # ==========================================================================

    refund_amount = models.PositiveBigIntegerField(default=0)
    refund_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Fraction of the menu subtotal refunded (0.0 - 1.0)",
    )
    menu_refund_amount = models.PositiveBigIntegerField(default=0)
    delivery_refund_amount = models.PositiveBigIntegerField(default=0)

    can_refund_coupon = models.BooleanField(default=False)
    can_refund_points = models.BooleanField(default=False)
    coupon_refunded = models.BooleanField(default=False)
    points_refunded = models.BooleanField(default=False)

    # ==========================================================================
    # Decision
    # ==========================================================================

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="approved_cancellations",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    auto_approved = models.BooleanField(default=False)
    approval_deadline = models.DateTimeField(null=True, blank=True, db_index=True)

    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="rejected_cancellations",
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True, default="")
    withdrawn_at = models.DateTimeField(null=True, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Recovery
    # ==========================================================================

    recovery_attempts = models.PositiveIntegerField(default=0)
    last_recovery_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "status"], name="cancellation_order_status_idx"),
            models.Index(
                fields=["status", "completed_at"], name="cancellation_completed_idx"
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(status__in=OPEN_CANCELLATION_STATUSES),
                name="one_open_cancellation_per_order",
            ),
            models.CheckConstraint(
                condition=Q(
                    refund_amount=F("menu_refund_amount") + F("delivery_refund_amount")
                ),
                name="cancellation_refund_amount_sum",
            ),
            models.CheckConstraint(
                condition=Q(refund_rate__gte=0) & Q(refund_rate__lte=1),
                name="cancellation_refund_rate_range",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderCancellation({self.id}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=CancellationStatus.PENDING,
        target=CancellationStatus.APPROVED,
    )
    def approve(self, approver=None, auto: bool = False):
        """
        Record the approval decision.

        Transition: PENDING -> APPROVED
        """
        self.approved_by = approver
        self.approved_at = timezone.now()
        self.auto_approved = auto

    @transition(
        field=status,
        source=CancellationStatus.PENDING,
        target=CancellationStatus.REJECTED,
    )
    def reject(self, rejected_by, reason: str):
        """
        Record the rejection decision. The order is left untouched.

        Transition: PENDING -> REJECTED
        """
        self.rejected_by = rejected_by
        self.rejected_at = timezone.now()
        self.rejection_reason = reason

    @transition(
        field=status,
        source=CancellationStatus.PENDING,
        target=CancellationStatus.WITHDRAWN,
    )
    def withdraw(self):
        """Transition: PENDING -> WITHDRAWN"""
        self.withdrawn_at = timezone.now()

    @transition(
        field=status,
        source=CancellationStatus.APPROVED,
        target=CancellationStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the order as cancelled under this request.

        Transition: APPROVED -> COMPLETED
        """
        self.completed_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_CANCELLATION_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.status == CancellationStatus.COMPLETED

    @property
    def needs_coupon_recovery(self) -> bool:
        return self.can_refund_coupon and not self.coupon_refunded

    @property
    def needs_points_recovery(self) -> bool:
        return self.can_refund_points and not self.points_refunded
