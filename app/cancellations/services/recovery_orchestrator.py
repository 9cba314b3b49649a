"""
Recovery orchestration for completed cancellations.

A cancelled order owes the customer up to three things: the gateway
refund, the coupon they used and the points they spent. Each lives in a
different store, so there is no single transaction covering them.
Instead every step is committed on its own, records its completion on
the cancellation, and is skipped on the next run once done.

Steps are independent: a failed refund does not stop the coupon restore
and vice versa. Whatever is left is picked up by process_pending_recoveries
(Celery beat) or retry_recovery (admin).

Usage:
    from cancellations.services import RecoveryOrchestrator

    result = RecoveryOrchestrator.process_cancellation_recovery(cancellation.id)
    if not result.fully_complete:
        logger.info("Left for the recovery sweep", extra=result.errors)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.db.models import Exists, F, OuterRef, Q
from django.utils import timezone

from core.exceptions import NotFoundError, StateConflictError, ValidationError
from core.services import BaseService
from cancellations.models import CancellationStatus, OrderCancellation
from cancellations.types import RECOVERY_STEPS, RecoveryResult
from payments.models import Refund
from payments.services import RefundService
from payments.state_machines import RefundState
from rewards.services import CouponRecoveryService, PointRecoveryService

logger = logging.getLogger(__name__)


class RecoveryOrchestrator(BaseService):
    """
    Runs the coupon, points and refund recovery steps for a cancellation.

    Safety Guarantees:
        - Each step checks its own completion first, so re-running is safe
        - A completed step is never undone when another step fails
        - Step exceptions are logged and reported, never raised
    """

    @classmethod
    def _get_completed(cls, cancellation_id: uuid.UUID) -> OrderCancellation:
        cancellation = (
            OrderCancellation.objects.select_related("order")
            .filter(id=cancellation_id)
            .first()
        )
        if cancellation is None:
            raise NotFoundError(
                f"Cancellation {cancellation_id} not found",
                error_code="CANCELLATION_NOT_FOUND",
                details={"cancellation_id": str(cancellation_id)},
            )
        if cancellation.status != CancellationStatus.COMPLETED:
            raise StateConflictError(
                "Recovery runs only for completed cancellations",
                error_code="CANCELLATION_NOT_COMPLETED",
                details={
                    "cancellation_id": str(cancellation_id),
                    "status": cancellation.status,
                },
            )
        return cancellation

    @classmethod
    def process_cancellation_recovery(
        cls,
        cancellation_id: uuid.UUID,
        steps: Iterable[str] | None = None,
    ) -> RecoveryResult:
        """
        Run every outstanding recovery step for a completed cancellation.

        Args:
            cancellation_id: Completed cancellation to recover
            steps: Restrict the run to these steps (default: all)

        Returns:
            RecoveryResult with a per-step outcome

        Raises:
            NotFoundError: Unknown cancellation
            StateConflictError: Cancellation is not completed
        """
        selected = set(RECOVERY_STEPS if steps is None else steps)
        cancellation = cls._get_completed(cancellation_id)
        result = RecoveryResult()
        log_context = {
            "cancellation_id": str(cancellation.id),
            "order_id": str(cancellation.order_id),
        }

        if cancellation.can_refund_coupon:
            if cancellation.coupon_refunded:
                result.coupon = True
            elif "coupon" in selected:
                result.coupon = cls._run_reward_step(
                    cancellation, CouponRecoveryService, "coupon_refunded", result
                )

        if cancellation.can_refund_points:
            if cancellation.points_refunded:
                result.points = True
            elif "points" in selected:
                result.points = cls._run_reward_step(
                    cancellation, PointRecoveryService, "points_refunded", result
                )

        if cancellation.refund_amount > 0 and "refund" in selected:
            result.refund = cls._run_refund_step(cancellation, result)

        OrderCancellation.objects.filter(id=cancellation.id).update(
            recovery_attempts=F("recovery_attempts") + 1,
            last_recovery_at=timezone.now(),
            updated_at=timezone.now(),
        )

        log = cls.get_logger()
        if result.fully_complete:
            log.info("Recovery complete", extra={**log_context, **result.to_dict()})
        else:
            log.warning(
                "Recovery incomplete",
                extra={
                    **log_context,
                    "coupon": result.coupon,
                    "points": result.points,
                    "refund": result.refund,
                    "errors": result.errors,
                },
            )
        return result

    @classmethod
    def _run_reward_step(
        cls,
        cancellation: OrderCancellation,
        service: type[CouponRecoveryService] | type[PointRecoveryService],
        flag: str,
        result: RecoveryResult,
    ) -> bool:
        """Run a ledger restore and set its completion flag on success."""
        step = service.STEP
        try:
            step_result = service.recover(cancellation.order_id)
        except Exception as e:
            logger.exception(
                f"Recovery step '{step}' raised",
                extra={"cancellation_id": str(cancellation.id), "step": step},
            )
            result.errors[step] = type(e).__name__
            return False

        if not step_result.success:
            result.errors[step] = step_result.error_code or "STEP_FAILED"
            return False

        OrderCancellation.objects.filter(id=cancellation.id).update(
            **{flag: True, "updated_at": timezone.now()}
        )
        setattr(cancellation, flag, True)
        return True

    @classmethod
    def _run_refund_step(
        cls,
        cancellation: OrderCancellation,
        result: RecoveryResult,
    ) -> bool:
        """Create the refund if missing, then attempt it unless already done."""
        try:
            refund = RefundService.create_refund(cancellation)
            if refund is None:
                return True
            if refund.is_complete:
                return True
            if refund.status == RefundState.FAILED and not refund.is_retryable:
                result.errors["refund"] = "NOT_RETRYABLE"
                return False
            outcome = RefundService.process_refund(refund.id)
        except Exception as e:
            logger.exception(
                "Recovery step 'refund' raised",
                extra={"cancellation_id": str(cancellation.id), "step": "refund"},
            )
            result.errors["refund"] = type(e).__name__
            return False

        if not outcome.success:
            result.errors["refund"] = outcome.error_code or "REFUND_FAILED"
        return outcome.success

    # =========================================================================
    # Status & Retry
    # =========================================================================

    @classmethod
    def get_recovery_status(cls, cancellation_id: uuid.UUID) -> dict[str, Any]:
        """
        Where each recovery step stands, without running anything.

        Step values: "done", "pending" or "not_applicable".
        """
        cancellation = cls._get_completed(cancellation_id)

        def flag_status(eligible: bool, done: bool) -> str:
            if not eligible:
                return "not_applicable"
            return "done" if done else "pending"

        refund = RefundService.get_active_refund(cancellation.id)
        if cancellation.refund_amount <= 0:
            refund_status = "not_applicable"
        elif refund is not None and refund.is_complete:
            refund_status = "done"
        else:
            refund_status = "pending"

        return {
            "cancellation_id": str(cancellation.id),
            "coupon": flag_status(
                cancellation.can_refund_coupon, cancellation.coupon_refunded
            ),
            "points": flag_status(
                cancellation.can_refund_points, cancellation.points_refunded
            ),
            "refund": refund_status,
            "refund_id": str(refund.id) if refund else None,
            "refund_state": refund.status if refund else None,
            "recovery_attempts": cancellation.recovery_attempts,
            "last_recovery_at": cancellation.last_recovery_at,
        }

    @classmethod
    def retry_recovery(
        cls,
        cancellation_id: uuid.UUID,
        steps: Iterable[str] | None = None,
    ) -> RecoveryResult:
        """
        Re-run recovery, optionally for selected steps only.

        Raises:
            ValidationError: Unknown step name
        """
        if steps is not None:
            steps = list(steps)
            unknown = sorted(set(steps) - set(RECOVERY_STEPS))
            if unknown:
                raise ValidationError(
                    f"Unknown recovery steps: {', '.join(unknown)}",
                    error_code="INVALID_RECOVERY_STEP",
                    details={"steps": unknown, "allowed": list(RECOVERY_STEPS)},
                )

        cls.get_logger().info(
            "Recovery retry requested",
            extra={"cancellation_id": str(cancellation_id), "steps": steps},
        )
        return cls.process_cancellation_recovery(cancellation_id, steps=steps)

    @classmethod
    def process_pending_recoveries(
        cls,
        limit: int | None = None,
        older_than_minutes: int | None = None,
    ) -> dict[str, int]:
        """
        Sweep completed cancellations with outstanding recovery steps.

        Only cancellations completed more than older_than_minutes ago are
        picked, leaving the request path time to finish its own run.
        Cancellations that reached RECOVERY_MAX_ATTEMPTS are left for
        manual handling.

        A cancellation whose only outstanding step is an existing refund is
        left to the refund sweep.
        """
        limit = limit or settings.RECOVERY_SWEEP_BATCH_SIZE
        if older_than_minutes is None:
            older_than_minutes = settings.RECOVERY_SWEEP_DELAY_MINUTES
        cutoff = timezone.now() - timedelta(minutes=older_than_minutes)

        active_refund = Refund.objects.filter(cancellation=OuterRef("pk")).exclude(
            status=RefundState.CANCELLED
        )
        outstanding = (
            Q(can_refund_coupon=True, coupon_refunded=False)
            | Q(can_refund_points=True, points_refunded=False)
            | (Q(refund_amount__gt=0) & ~Exists(active_refund))
        )
        candidate_ids = list(
            OrderCancellation.objects.filter(
                outstanding,
                status=CancellationStatus.COMPLETED,
                completed_at__lt=cutoff,
                recovery_attempts__lt=settings.RECOVERY_MAX_ATTEMPTS,
            )
            .order_by("completed_at")
            .values_list("id", flat=True)[:limit]
        )

        processed = 0
        completed = 0
        for cancellation_id in candidate_ids:
            result = cls.process_cancellation_recovery(cancellation_id)
            processed += 1
            if result.fully_complete:
                completed += 1

        cls.get_logger().info(
            "Recovery sweep finished",
            extra={"processed": processed, "fully_complete": completed},
        )
        return {"processed": processed, "fully_complete": completed}
