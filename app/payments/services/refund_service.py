"""
Refund service for returning money to customers of cancelled orders.

This module provides the RefundService class which owns every Refund row
mutation. Gateway calls follow a two-phase pattern so no database lock or
transaction is ever held across the network call.

The service implements:
1. Idempotent refund creation per cancellation
2. Claim → gateway call → finalize processing with a stable idempotency key
3. Manual retries (retry endpoint) with ownership checks
4. The scheduled sweep for failed, stale-pending and stuck refunds

Usage:
    from payments.services import RefundService

    refund = RefundService.create_refund(cancellation)
    if refund is not None:
        outcome = RefundService.process_refund(refund.id)
        if not outcome.success and outcome.is_retryable:
            ...  # left for the retry sweep
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed, can_proceed

from core.exceptions import AuthorizationError, NotFoundError, StateConflictError
from core.services import BaseService
from notifications.models import RefundEvent
from notifications.services import notify_refund

from payments.adapters import (
    GatewayRefundRequest,
    GatewayRefundResult,
    IdempotencyKeyGenerator,
    PaymentGatewayClient,
    backoff_delay,
    get_gateway_client,
)
from payments.adapters.base import OFFLINE_PAYMENT_METHODS
from payments.exceptions import InvalidStateTransitionError, StaleRecordError
from payments.locks import check_version
from payments.models import Refund
from payments.state_machines import CLAIMABLE_REFUND_STATES, RefundState

if TYPE_CHECKING:
    from authentication.models import User
    from cancellations.models import OrderCancellation


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Upper bound on the backoff between automatic retries (seconds)
MAX_RETRY_BACKOFF_SECONDS = 3600


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundOutcome:
    """
    Result of a refund processing attempt.

    Attributes:
        refund: The Refund as stored after the attempt
        success: Whether the refund is completed
        error_code: Why it is not completed, if it is not
        error_message: Human-readable detail for error_code
        is_retryable: Whether a later attempt may succeed
        gateway_called: Whether this attempt reached the gateway
    """

    refund: Refund
    success: bool
    error_code: str | None = None
    error_message: str | None = None
    is_retryable: bool = False
    gateway_called: bool = False


@dataclass
class RefundSweepResult:
    """Counts from one run of the retry sweep."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    released_stuck: int = 0


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for processing refunds to customers.

    Two-Phase Pattern:
        1. Claim: lock the row, proceed only from PENDING/FAILED,
           transition to PROCESSING, commit
        2. Call the gateway OUTSIDE any transaction
        3. Finalize: re-lock the row at the claimed version and record
           COMPLETED or FAILED, commit

    Safety Guarantees:
        - The claim serializes concurrent attempts on one refund
        - The idempotency key is the same on every attempt, so a lost
          gateway response can be retried without refunding twice
        - Gateway failures are recorded on the row, never raised
    """

    # Gateway client - can be injected for testing
    _gateway_client: PaymentGatewayClient | None = None

    @classmethod
    def get_gateway_client(cls, payment_method: str) -> PaymentGatewayClient | None:
        """Get the gateway client for a payment method (None for offline methods)."""
        if payment_method in OFFLINE_PAYMENT_METHODS:
            return None
        return cls._gateway_client or get_gateway_client(payment_method)

    @classmethod
    def set_gateway_client(cls, client: PaymentGatewayClient | None) -> None:
        """Set the gateway client (for testing)."""
        cls._gateway_client = client

    @staticmethod
    def idempotency_key(refund: Refund) -> str:
        """Key sent with every gateway attempt for this refund."""
        return IdempotencyKeyGenerator.generate("refund", refund.id)

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_refund(cls, cancellation: OrderCancellation) -> Refund | None:
        """
        Create the pending refund for a cancellation.

        Idempotent: returns the cancellation's active refund when one
        already exists.

        Returns:
            The Refund, or None when the cancellation refunds nothing
        """
        if cancellation.refund_amount <= 0:
            return None

        existing = cls.get_active_refund(cancellation.id)
        if existing is not None:
            return existing

        order = cancellation.order
        try:
            with transaction.atomic():
                refund = Refund.objects.create(
                    order=order,
                    cancellation=cancellation,
                    user_id=order.user_id,
                    amount=cancellation.refund_amount,
                    original_amount=order.paid_amount,
                    refund_rate=cancellation.refund_rate,
                    payment_method=order.payment_method,
                    payment_key=order.payment_key,
                )
        except IntegrityError:
            # Another process created it first (one active refund per cancellation)
            return cls.get_active_refund(cancellation.id)

        cls.get_logger().info(
            "Refund created",
            extra={
                "refund_id": str(refund.id),
                "cancellation_id": str(cancellation.id),
                "order_id": str(order.id),
                "amount": refund.amount,
            },
        )
        return refund

    @classmethod
    def get_active_refund(cls, cancellation_id: uuid.UUID) -> Refund | None:
        """The cancellation's non-cancelled refund, if any."""
        return (
            Refund.objects.filter(cancellation_id=cancellation_id)
            .exclude(status=RefundState.CANCELLED)
            .first()
        )

    # =========================================================================
    # Processing
    # =========================================================================

    @classmethod
    def process_refund(cls, refund_id: uuid.UUID) -> RefundOutcome:
        """
        Attempt the gateway refund.

        Args:
            refund_id: Refund to process

        Returns:
            RefundOutcome. Gateway failures are recorded on the row and
            reported here, never raised.

        Raises:
            NotFoundError: If the refund does not exist
        """
        log = cls.get_logger()

        refund = Refund.objects.filter(id=refund_id).first()
        if refund is None:
            raise NotFoundError(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
                details={"refund_id": str(refund_id)},
            )

        if refund.status == RefundState.COMPLETED:
            return RefundOutcome(refund=refund, success=True)

        if refund.status == RefundState.CANCELLED:
            return RefundOutcome(
                refund=refund,
                success=False,
                error_code="REFUND_CANCELLED",
                error_message="Refund was cancelled",
            )

        # Phase 1: claim
        with transaction.atomic():
            refund = (
                Refund.objects.select_for_update()
                .select_related("cancellation")
                .get(id=refund_id)
            )
            if refund.status == RefundState.COMPLETED:
                return RefundOutcome(refund=refund, success=True)
            if not can_proceed(refund.start_processing):
                log.info(
                    "Refund not claimable, skipping",
                    extra={"refund_id": str(refund_id), "status": refund.status},
                )
                return RefundOutcome(
                    refund=refund,
                    success=False,
                    error_code="REFUND_IN_PROGRESS",
                    error_message=f"Refund is {refund.status}",
                    is_retryable=refund.status == RefundState.PROCESSING,
                )
            refund.start_processing()
            refund.save()

        claimed_version = refund.version
        log_context = {
            "refund_id": str(refund.id),
            "order_id": str(refund.order_id),
            "amount": refund.amount,
            "retry_count": refund.retry_count,
        }
        log.info("Refund claimed", extra=log_context)

        # Phase 2: gateway call, outside any transaction
        start_time = time.time()
        result = cls._call_gateway(refund)
        duration_ms = (time.time() - start_time) * 1000

        # Phase 3: finalize
        try:
            with transaction.atomic():
                refund = check_version(Refund, refund.id, claimed_version)
                if result.success:
                    refund.complete(
                        pg_transaction_id=result.pg_transaction_id,
                        pg_response=result.raw_response,
                    )
                else:
                    refund.fail(
                        error_message=result.error_message,
                        error_code=result.error_code,
                        is_retryable=result.is_retryable,
                        pg_response=result.raw_response,
                    )
                refund.save()
        except StaleRecordError as e:
            # Left in PROCESSING; the sweep releases it and the retry
            # reuses the idempotency key
            log.error(
                "Refund changed during gateway call",
                extra={
                    **log_context,
                    "gateway_success": result.success,
                    "pg_transaction_id": result.pg_transaction_id,
                },
            )
            return RefundOutcome(
                refund=Refund.objects.get(id=refund_id),
                success=False,
                error_code=e.error_code,
                error_message=e.message,
                is_retryable=True,
                gateway_called=True,
            )

        if result.success:
            log.info(
                "Refund completed",
                extra={
                    **log_context,
                    "pg_transaction_id": result.pg_transaction_id,
                    "already_settled": result.already_settled,
                    "duration_ms": duration_ms,
                },
            )
            notify_refund(refund.id, RefundEvent.COMPLETED)
        else:
            log.warning(
                "Refund failed",
                extra={
                    **log_context,
                    "error_code": result.error_code,
                    "is_retryable": result.is_retryable,
                    "duration_ms": duration_ms,
                },
            )
            if not refund.is_retryable or refund.retry_count >= settings.REFUND_MAX_RETRIES:
                notify_refund(refund.id, RefundEvent.FAILED)

        return RefundOutcome(
            refund=refund,
            success=result.success,
            error_code=result.error_code,
            error_message=result.error_message,
            is_retryable=result.is_retryable,
            gateway_called=True,
        )

    @classmethod
    def _call_gateway(cls, refund: Refund) -> GatewayRefundResult:
        """Issue the gateway refund for a claimed refund."""
        client = cls.get_gateway_client(refund.payment_method)
        if client is None:
            # Settled offline by the restaurant or rider
            return GatewayRefundResult(
                success=True,
                raw_response={"settlement": "offline"},
            )

        if not refund.payment_key:
            return GatewayRefundResult(
                success=False,
                error_code="MISSING_PAYMENT_KEY",
                error_message="Order has no gateway payment reference",
                is_retryable=False,
            )

        return client.refund(
            GatewayRefundRequest(
                payment_key=refund.payment_key,
                amount=refund.amount,
                idempotency_key=cls.idempotency_key(refund),
                reason=refund.cancellation.reason_category,
                metadata={
                    "refund_id": str(refund.id),
                    "order_id": str(refund.order_id),
                    "cancellation_id": str(refund.cancellation_id),
                },
            )
        )

    # =========================================================================
    # Manual Operations
    # =========================================================================

    @classmethod
    def retry_refund(cls, refund_id: uuid.UUID, requester: User) -> RefundOutcome:
        """
        Retry a refund on behalf of its owner.

        The automatic retry ceiling does not apply here.

        Raises:
            NotFoundError: Unknown refund
            AuthorizationError: Requester does not own the order
            StateConflictError: ALREADY_COMPLETED, or NOT_RETRYABLE when the
                refund is processing, cancelled, or failed permanently
        """
        refund = cls.get_refund_for_user(refund_id, requester)

        if refund.status == RefundState.COMPLETED:
            raise StateConflictError(
                "Refund is already completed",
                error_code="ALREADY_COMPLETED",
                details={"refund_id": str(refund.id)},
            )

        if refund.status not in CLAIMABLE_REFUND_STATES or (
            refund.status == RefundState.FAILED and not refund.is_retryable
        ):
            raise StateConflictError(
                "Refund cannot be retried",
                error_code="NOT_RETRYABLE",
                details={
                    "refund_id": str(refund.id),
                    "status": refund.status,
                    "is_retryable": refund.is_retryable,
                },
            )

        cls.get_logger().info(
            "Manual refund retry",
            extra={
                "refund_id": str(refund.id),
                "requester_id": str(requester.id),
                "retry_count": refund.retry_count,
            },
        )
        return cls.process_refund(refund.id)

    @classmethod
    def cancel_refund(cls, refund_id: uuid.UUID, note: str = "") -> Refund:
        """
        Abandon a pending or failed refund (settled manually by ops).

        Raises:
            InvalidStateTransitionError: From processing, completed or cancelled
        """
        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(id=refund_id)
            try:
                refund.cancel()
            except TransitionNotAllowed as e:
                raise InvalidStateTransitionError(
                    f"Cannot cancel refund from '{refund.status}' state",
                    details={
                        "current_state": refund.status,
                        "target_state": RefundState.CANCELLED,
                        "transition": "cancel",
                    },
                ) from e
            if note:
                refund.last_error = note
            refund.save()

        cls.get_logger().warning(
            "Refund cancelled",
            extra={"refund_id": str(refund_id), "note": note},
        )
        return refund

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_refund_for_user(cls, refund_id: uuid.UUID, user: User) -> Refund:
        """
        Load a refund the user may see.

        Raises:
            NotFoundError: Unknown refund
            AuthorizationError: User neither owns the order nor is an admin
        """
        refund = (
            Refund.objects.select_related("order", "cancellation")
            .filter(id=refund_id)
            .first()
        )
        if refund is None:
            raise NotFoundError(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
                details={"refund_id": str(refund_id)},
            )

        if refund.order.user_id != user.id and not user.is_admin:
            raise AuthorizationError(
                "You can only view refunds for your own orders",
                error_code="NOT_REFUND_OWNER",
                details={"refund_id": str(refund_id)},
            )
        return refund

    @classmethod
    def get_refunds_for_order(cls, order_id: uuid.UUID) -> list[Refund]:
        return list(Refund.objects.filter(order_id=order_id).order_by("created_at"))

    @classmethod
    def list_refunds_for_user(
        cls,
        user: User,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Refund], int]:
        """
        One page of the user's refunds, newest first.

        Returns:
            (refunds on the page, total matching refunds)
        """
        queryset = Refund.objects.filter(user=user).order_by("-created_at")
        if status:
            queryset = queryset.filter(status=status)

        total = queryset.count()
        offset = (page - 1) * limit
        return list(queryset[offset : offset + limit]), total

    # =========================================================================
    # Sweep
    # =========================================================================

    @classmethod
    def retry_failed_refunds(cls, limit: int = 50) -> RefundSweepResult:
        """
        Retry refunds that are due for another automatic attempt.

        Picks up:
        - FAILED, retryable, under REFUND_MAX_RETRIES, past their backoff
        - PENDING never attempted, older than REFUND_STALE_PENDING_MINUTES

        Refunds stuck in PROCESSING longer than the stale window are
        released to FAILED (retryable) first.
        """
        now = timezone.now()
        stale_before = now - timedelta(minutes=settings.REFUND_STALE_PENDING_MINUTES)
        sweep = RefundSweepResult()

        sweep.released_stuck = cls._release_stuck_refunds(stale_before)

        due_ids: list[uuid.UUID] = []
        failed = Refund.objects.filter(
            status=RefundState.FAILED,
            is_retryable=True,
            retry_count__lt=settings.REFUND_MAX_RETRIES,
        ).order_by("failed_at")
        for refund in failed:
            delay = backoff_delay(
                refund.retry_count,
                base=settings.REFUND_RETRY_BASE_DELAY_SECONDS,
                max_delay=MAX_RETRY_BACKOFF_SECONDS,
            )
            if refund.failed_at is None or refund.failed_at + timedelta(
                seconds=delay
            ) <= now:
                due_ids.append(refund.id)
            if len(due_ids) >= limit:
                break

        if len(due_ids) < limit:
            stale_pending = Refund.objects.filter(
                status=RefundState.PENDING,
                last_attempt_at__isnull=True,
                created_at__lt=stale_before,
            ).order_by("created_at")[: limit - len(due_ids)]
            due_ids.extend(stale_pending.values_list("id", flat=True))

        for refund_id in due_ids:
            outcome = cls.process_refund(refund_id)
            if not outcome.gateway_called:
                continue
            sweep.attempted += 1
            if outcome.success:
                sweep.succeeded += 1
            else:
                sweep.failed += 1

        cls.get_logger().info(
            "Refund retry sweep finished",
            extra={
                "attempted": sweep.attempted,
                "succeeded": sweep.succeeded,
                "failed": sweep.failed,
                "released_stuck": sweep.released_stuck,
            },
        )
        return sweep

    @classmethod
    def _release_stuck_refunds(cls, stale_before) -> int:
        """Move PROCESSING refunds whose attempt never finished to FAILED."""
        released = 0
        stuck_ids = list(
            Refund.objects.filter(
                status=RefundState.PROCESSING,
                last_attempt_at__lt=stale_before,
            ).values_list("id", flat=True)
        )
        for refund_id in stuck_ids:
            with transaction.atomic():
                refund = Refund.objects.select_for_update().get(id=refund_id)
                if refund.status != RefundState.PROCESSING:
                    continue
                refund.fail(
                    error_message="Gateway attempt did not finish",
                    error_code="ATTEMPT_ABANDONED",
                    is_retryable=True,
                )
                refund.save()
                released += 1

            cls.get_logger().warning(
                "Released stuck refund",
                extra={"refund_id": str(refund_id)},
            )
        return released
