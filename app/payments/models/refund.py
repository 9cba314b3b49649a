"""
Refund model for tracking money returned to customers.

A Refund represents the gateway refund owed for one cancellation. It is
created pending when a cancellation completes with a positive refund
amount, and moves through the gateway attempt in two phases: a claim
(pending/failed → processing) committed before the gateway call, and a
finalize (processing → completed/failed) committed after it.

Usage:
    from payments.models import Refund
    from payments.state_machines import RefundState

    refund = Refund.objects.create(
        order=order,
        cancellation=cancellation,
        user=order.user,
        amount=23000,
        original_amount=23000,
        refund_rate=Decimal("1.0000"),
        payment_method=order.payment_method,
        payment_key=order.payment_key,
    )

    # State transitions using django-fsm
    refund.start_processing()  # pending -> processing
    refund.save()

    refund.complete(pg_transaction_id="re_123")  # processing -> completed
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import RefundState


class Refund(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Represents money returned to a customer for a cancelled order.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING -> PROCESSING -> FAILED -> PROCESSING (retry)
        PENDING/FAILED -> CANCELLED

    Fields:
        order: Cancelled order being refunded
        cancellation: Cancellation that created this refund
        user: Customer receiving the money
        amount: Refund amount in smallest currency unit
        original_amount: Amount originally charged (subtotal + delivery fee)
        refund_rate: Fraction of the order refunded (0.0 - 1.0)
        payment_method: How the customer paid
        payment_key: Gateway payment reference
        status: Current FSM state
        retry_count: Attempts made after the first one
        last_error: Error message from the last failed attempt
        error_code: Gateway error code from the last failed attempt
        is_retryable: Whether the last failure may succeed on retry
        pg_transaction_id: Gateway refund reference once completed
        pg_response: Raw gateway response for audit
        last_attempt_at: When the last gateway attempt started
        completed_at / failed_at: Outcome timestamps
        version: Optimistic locking version

    Constraints:
        - amount must be positive
        - at most one non-cancelled refund per cancellation
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order being refunded",
    )

    cancellation = models.ForeignKey(
        "cancellations.OrderCancellation",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Cancellation this refund settles",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Customer receiving the refund",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit",
    )

    original_amount = models.PositiveBigIntegerField(
        help_text="Amount originally charged for the order",
    )

    refund_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Fraction of the menu subtotal refunded (0.0 - 1.0)",
    )

    # ==========================================================================
    # Payment Reference
    # ==========================================================================

    payment_method = models.CharField(
        max_length=20,
        help_text="Payment method of the original order",
    )

    payment_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Gateway payment reference to refund against",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundState.PENDING,
        choices=RefundState.choices,
        db_index=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    # ==========================================================================
    # Attempts & Errors
    # ==========================================================================

    retry_count = models.PositiveIntegerField(
        default=0,
        help_text="Gateway attempts made after the first one",
    )

    last_error = models.TextField(
        null=True,
        blank=True,
        help_text="Error message from the last failed attempt",
    )

    error_code = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Gateway error code from the last failed attempt",
    )

    is_retryable = models.BooleanField(
        default=True,
        help_text="Whether the last failure may succeed on retry",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    pg_transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Gateway refund reference (e.g. Stripe re_xxx)",
    )

    pg_response = models.JSONField(
        default=dict,
        blank=True,
        help_text="Raw gateway response for audit",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    last_attempt_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last gateway attempt started",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When refund was completed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When refund last failed",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["order", "status"], name="refund_order_status_idx"),
            models.Index(fields=["status", "created_at"], name="refund_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="refund_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["cancellation"],
                condition=~Q(status=RefundState.CANCELLED),
                name="one_active_refund_per_cancellation",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Refund({self.id}, {self.status}, {self.amount})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[RefundState.PENDING, RefundState.FAILED],
        target=RefundState.PROCESSING,
    )
    def start_processing(self):
        """
        Claim the refund for a gateway attempt.

        Transition: PENDING/FAILED -> PROCESSING

        Any attempt after the first increments retry_count.
        """
        if self.last_attempt_at is not None or self.status == RefundState.FAILED:
            self.retry_count += 1
        self.last_attempt_at = timezone.now()

    @transition(
        field=status,
        source=RefundState.PROCESSING,
        target=RefundState.COMPLETED,
    )
    def complete(
        self,
        pg_transaction_id: str | None = None,
        pg_response: dict | None = None,
    ):
        """
        Mark refund as completed.

        Transition: PROCESSING -> COMPLETED
        """
        self.completed_at = timezone.now()
        self.pg_transaction_id = pg_transaction_id
        self.pg_response = pg_response or {}
        self.last_error = None
        self.error_code = None

    @transition(
        field=status,
        source=RefundState.PROCESSING,
        target=RefundState.FAILED,
    )
    def fail(
        self,
        error_message: str | None = None,
        error_code: str | None = None,
        is_retryable: bool = True,
        pg_response: dict | None = None,
    ):
        """
        Mark refund as failed.

        Transition: PROCESSING -> FAILED

        Args:
            error_message: Gateway error message
            error_code: Gateway error code
            is_retryable: Whether a later attempt may succeed
            pg_response: Raw gateway response, if any
        """
        self.failed_at = timezone.now()
        self.last_error = error_message
        self.error_code = error_code
        self.is_retryable = is_retryable
        if pg_response:
            self.pg_response = pg_response

    @transition(
        field=status,
        source=[RefundState.PENDING, RefundState.FAILED],
        target=RefundState.CANCELLED,
    )
    def cancel(self):
        """
        Abandon the refund (e.g. settled manually outside the gateway).

        Transition: PENDING/FAILED -> CANCELLED
        """
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        """Check if refund is complete."""
        return self.status == RefundState.COMPLETED

    @property
    def is_pending(self) -> bool:
        """Check if refund still awaits a successful gateway call."""
        return self.status in [
            RefundState.PENDING,
            RefundState.PROCESSING,
            RefundState.FAILED,
        ]

    @property
    def attempt_count(self) -> int:
        """Total gateway attempts made."""
        if self.last_attempt_at is None:
            return 0
        return self.retry_count + 1
