"""
Give back points spent on a cancelled order.

The refund entry references the original use entry and carries an
idempotency key derived from it. The balance snapshot is locked with
select_for_update and updated in the same transaction as the append.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult
from rewards.models import PointBalance, PointTransaction, PointTransactionType
from rewards.types import RecoveryStepResult

if TYPE_CHECKING:
    import uuid


class PointRecoveryService(BaseService):
    """Refund points used on cancelled orders."""

    STEP = "points"

    @staticmethod
    def restore_key(order_id, debit_id) -> str:
        return f"point-restore:{order_id}:{debit_id}"

    @classmethod
    def get_debit(cls, order_id: uuid.UUID | str) -> PointTransaction | None:
        """The use entry recorded for the order, if points were spent."""
        return (
            PointTransaction.objects.filter(
                order_id=order_id,
                transaction_type=PointTransactionType.USE,
            )
            .order_by("created_at")
            .first()
        )

    @classmethod
    def recover(cls, order_id: uuid.UUID | str) -> ServiceResult[RecoveryStepResult]:
        """
        Refund the points spent on an order.

        Returns:
            ServiceResult with RecoveryStepResult; repeated calls return
            already_recovered=True without touching the balance
        """
        logger = cls.get_logger()

        debit = cls.get_debit(order_id)
        if debit is None:
            return ServiceResult.success(RecoveryStepResult(step=cls.STEP))

        key = cls.restore_key(order_id, debit.id)
        amount = abs(debit.amount)

        with cls.atomic():
            balance, _ = PointBalance.objects.select_for_update().get_or_create(
                user_id=debit.user_id
            )

            # Checked under the balance lock so concurrent calls serialize here
            existing = PointTransaction.objects.filter(idempotency_key=key).first()
            if existing is not None:
                logger.info(
                    "Points already refunded",
                    extra={"order_id": str(order_id), "debit_id": str(debit.id)},
                )
                return ServiceResult.success(
                    RecoveryStepResult(
                        step=cls.STEP,
                        already_recovered=True,
                        amount=existing.amount,
                        entry_id=existing.id,
                    )
                )

            balance.balance += amount
            balance.total_used = max(balance.total_used - amount, 0)
            balance.save(update_fields=["balance", "total_used", "updated_at"])

            entry = PointTransaction.objects.create(
                user_id=debit.user_id,
                order_id=debit.order_id,
                transaction_type=PointTransactionType.REFUND,
                amount=amount,
                balance_after=balance.balance,
                reference=debit,
                idempotency_key=key,
                description=f"Points returned for cancelled order {order_id}",
            )

        logger.info(
            "Points refunded",
            extra={
                "order_id": str(order_id),
                "user_id": str(debit.user_id),
                "amount": amount,
                "balance_after": entry.balance_after,
            },
        )
        return ServiceResult.success(
            RecoveryStepResult(
                step=cls.STEP,
                applied=True,
                amount=amount,
                entry_id=entry.id,
            )
        )
