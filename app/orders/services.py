"""
Order read/update interface used by the cancellation flow.

The cancellation core reads an order's status and amounts, and writes
exactly one change: status=cancelled with the reason. The write is a
conditional update so a concurrent status change is detected rather than
overwritten.

Usage:
    from orders.services import OrderService

    order = OrderService.get_order(order_id)
    OrderService.mark_cancelled(order, "customer_change_mind")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import NotFoundError, StateConflictError
from core.services import BaseService
from orders.models import Order, OrderStatus

if TYPE_CHECKING:
    import uuid

logger = logging.getLogger(__name__)

# Statuses an order can no longer leave
TERMINAL_STATUSES = frozenset([OrderStatus.DELIVERED, OrderStatus.CANCELLED])


class OrderService(BaseService):
    """Lookups and the guarded cancel write for orders."""

    @classmethod
    def get_order(cls, order_id: uuid.UUID | str) -> Order:
        """
        Load an order with its restaurant.

        Raises:
            NotFoundError: If no order has this id
        """
        order = (
            Order.objects.select_related("restaurant", "user")
            .filter(id=order_id)
            .first()
        )
        if order is None:
            raise NotFoundError(
                f"Order {order_id} not found",
                error_code="ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )
        return order

    @classmethod
    def mark_cancelled(
        cls,
        order: Order,
        reason: str,
        expected_status: str | None = None,
    ) -> Order:
        """
        Set the order to cancelled.

        Args:
            order: Order to cancel
            reason: Reason category recorded on the order
            expected_status: When given, the update only applies if the
                order is still in this status

        Returns:
            The same order instance with the new status applied

        Raises:
            StateConflictError: If the order moved on (or was already
                terminal) before the update ran
        """
        now = timezone.now()
        queryset = Order.objects.filter(pk=order.pk).exclude(
            status__in=TERMINAL_STATUSES
        )
        if expected_status is not None:
            queryset = queryset.filter(status=expected_status)

        updated = queryset.update(
            status=OrderStatus.CANCELLED,
            cancelled_reason=reason,
            cancelled_at=now,
            updated_at=now,
        )
        if updated == 0:
            current = (
                Order.objects.filter(pk=order.pk)
                .values_list("status", flat=True)
                .first()
            )
            raise StateConflictError(
                "Order status changed before it could be cancelled",
                error_code="ORDER_STATUS_CHANGED",
                details={
                    "order_id": str(order.pk),
                    "expected_status": expected_status,
                    "current_status": current,
                },
            )

        order.status = OrderStatus.CANCELLED
        order.cancelled_reason = reason
        order.cancelled_at = now

        logger.info(
            "Order marked cancelled",
            extra={"order_id": str(order.pk), "reason": reason},
        )
        return order
