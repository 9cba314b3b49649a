"""
Order models read and updated by the cancellation flow.

- Restaurant: The seller; its owner is the counterpart for approvals
- Order: Lifecycle status, amounts and the gateway payment reference

Amounts are integers in the smallest currency unit (KRW has no minor unit).
total_amount is the menu subtotal; delivery_fee is charged on top.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class OrderStatus(models.TextChoices):
    """
    Order lifecycle.

    State Flow:
        CREATED → CONFIRMED → PREPARING → READY → PICKED_UP → DELIVERING → DELIVERED
        any non-terminal state → CANCELLED
    """

    CREATED = "created", "Created"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    PICKED_UP = "picked_up", "Picked Up"
    DELIVERING = "delivering", "Delivering"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentMethod(models.TextChoices):
    """How the customer paid."""

    CARD = "card", "Credit/Debit Card"
    KAKAOPAY = "kakaopay", "KakaoPay"
    NAVERPAY = "naverpay", "NaverPay"
    TOSSPAY = "tosspay", "TossPay"
    SAMSUNGPAY = "samsungpay", "SamsungPay"
    PAYCO = "payco", "PAYCO"
    CASH = "cash", "Cash"


# Methods the payment gateway can refund automatically
GATEWAY_REFUNDABLE_METHODS = frozenset(
    [
        PaymentMethod.CARD,
        PaymentMethod.KAKAOPAY,
        PaymentMethod.NAVERPAY,
        PaymentMethod.TOSSPAY,
        PaymentMethod.SAMSUNGPAY,
        PaymentMethod.PAYCO,
    ]
)


class Restaurant(UUIDPrimaryKeyMixin, BaseModel):
    """
    A restaurant on the marketplace.

    Fields:
        name: Display name
        owner: User who approves or rejects cancellation requests
    """

    name = models.CharField(max_length=200)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="restaurants",
        help_text="Owner who decides on cancellation requests",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer order.

    Fields:
        user: Customer who placed the order
        restaurant: Restaurant preparing the order
        status: Lifecycle stage (see OrderStatus)
        total_amount: Menu subtotal
        delivery_fee: Delivery fee charged on top of the subtotal
        payment_method: How the customer paid
        payment_key: Gateway transaction reference used for refunds
        cancelled_reason: Reason category recorded when cancelled
        cancelled_at: When the order was cancelled
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    restaurant = models.ForeignKey(
        Restaurant,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.CREATED,
        db_index=True,
    )
    total_amount = models.PositiveBigIntegerField(
        help_text="Menu subtotal in the smallest currency unit",
    )
    delivery_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Delivery fee in the smallest currency unit",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )
    payment_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Payment gateway transaction reference",
    )
    cancelled_reason = models.CharField(
        max_length=50,
        null=True,
        blank=True,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="order_user_status_idx"),
            models.Index(
                fields=["restaurant", "status"], name="order_restaurant_status_idx"
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.id}, {self.status})"

    @property
    def paid_amount(self) -> int:
        """Amount charged to the customer."""
        return self.total_amount + self.delivery_fee

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED
