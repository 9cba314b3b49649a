"""
Give back a coupon consumed by a cancelled order.

Recovery is keyed on the original use entry: the restore entry's
idempotency key is derived from the order and that entry, so calling
recover() twice appends at most one restore.

Flow:
    1. Find the order's use entry (none → nothing to recover)
    2. Restore entry already present → already recovered
    3. Coupon expired → NotRecoverableError (returned as a failed result)
    4. In one transaction: append the restore entry, clear the wallet
       snapshot, decrement the coupon's used_quantity
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.services import BaseService, ServiceResult
from rewards.exceptions import NotRecoverableError
from rewards.models import Coupon, CouponUsage, CouponUsageKind, UserCoupon
from rewards.types import RecoveryStepResult

if TYPE_CHECKING:
    import uuid


class CouponRecoveryService(BaseService):
    """Restore coupons used on cancelled orders."""

    STEP = "coupon"

    @staticmethod
    def restore_key(order_id, usage_id) -> str:
        return f"coupon-restore:{order_id}:{usage_id}"

    @classmethod
    def get_usage(cls, order_id: uuid.UUID | str) -> CouponUsage | None:
        """The use entry recorded for the order, if a coupon was applied."""
        return (
            CouponUsage.objects.select_related("user_coupon__coupon")
            .filter(order_id=order_id, kind=CouponUsageKind.USE)
            .order_by("created_at")
            .first()
        )

    @classmethod
    def _ensure_recoverable(cls, user_coupon: UserCoupon, now) -> None:
        if user_coupon.is_expired(now):
            raise NotRecoverableError(
                "Coupon has expired and cannot be restored",
                details={"user_coupon_id": str(user_coupon.id)},
            )

    @classmethod
    def recover(cls, order_id: uuid.UUID | str) -> ServiceResult[RecoveryStepResult]:
        """
        Restore the coupon used on an order.

        Args:
            order_id: The cancelled order

        Returns:
            ServiceResult with RecoveryStepResult on success, or a failure
            with error_code NOT_RECOVERABLE when the coupon has expired
        """
        logger = cls.get_logger()

        usage = cls.get_usage(order_id)
        if usage is None:
            return ServiceResult.success(RecoveryStepResult(step=cls.STEP))

        key = cls.restore_key(order_id, usage.id)
        existing = CouponUsage.objects.filter(idempotency_key=key).first()
        if existing is not None:
            logger.info(
                "Coupon already restored",
                extra={"order_id": str(order_id), "usage_id": str(usage.id)},
            )
            return ServiceResult.success(
                RecoveryStepResult(
                    step=cls.STEP,
                    already_recovered=True,
                    amount=existing.discount_amount,
                    entry_id=existing.id,
                )
            )

        user_coupon = usage.user_coupon
        now = timezone.now()

        try:
            cls._ensure_recoverable(user_coupon, now)
        except NotRecoverableError as e:
            return cls.handle_exception(e, "Coupon recovery", logging.WARNING)

        with cls.atomic():
            try:
                # Savepoint so a lost race leaves the outer transaction usable
                with transaction.atomic():
                    restore = CouponUsage.objects.create(
                        user_coupon=user_coupon,
                        order_id=usage.order_id,
                        kind=CouponUsageKind.RESTORE,
                        discount_amount=usage.discount_amount,
                        reverses=usage,
                        idempotency_key=key,
                    )
            except IntegrityError:
                restore = CouponUsage.objects.get(idempotency_key=key)
                return ServiceResult.success(
                    RecoveryStepResult(
                        step=cls.STEP,
                        already_recovered=True,
                        amount=restore.discount_amount,
                        entry_id=restore.id,
                    )
                )

            UserCoupon.objects.filter(
                pk=user_coupon.pk, order_id=usage.order_id
            ).update(used_at=None, order=None, updated_at=now)
            Coupon.objects.filter(
                pk=user_coupon.coupon_id, used_quantity__gt=0
            ).update(used_quantity=F("used_quantity") - 1, updated_at=now)

        logger.info(
            "Coupon restored",
            extra={
                "order_id": str(order_id),
                "user_coupon_id": str(user_coupon.id),
                "restore_id": str(restore.id),
            },
        )
        return ServiceResult.success(
            RecoveryStepResult(
                step=cls.STEP,
                applied=True,
                amount=restore.discount_amount,
                entry_id=restore.id,
            )
        )
