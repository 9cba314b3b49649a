"""
Coupon and point models.

This module defines two ledgers with their snapshot rows:
- Coupon: Campaign definition with a usage counter
- UserCoupon: A coupon held in a user's wallet (snapshot)
- CouponUsage: Append-only ledger of coupon use and restore entries
- PointBalance: A user's running point balance (snapshot)
- PointTransaction: Append-only ledger of point movements

Ledger rows are never edited. A restore or refund is a new row whose
`reverses`/`reference` points at the entry it undoes, and whose unique
idempotency_key makes a repeated recovery a no-op.

Usage:
    from rewards.models import CouponUsage, PointTransaction

    debit = PointTransaction.objects.filter(
        order_id=order.id, transaction_type=PointTransactionType.USE
    ).first()
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED = "fixed", "Fixed Amount"


class CouponUsageKind(models.TextChoices):
    """
    Values:
        USE: Coupon applied to an order at checkout
        RESTORE: Coupon given back after the order was cancelled
    """

    USE = "use", "Use"
    RESTORE = "restore", "Restore"


class PointTransactionType(models.TextChoices):
    """
    Values:
        EARN: Points credited for a completed order
        USE: Points spent on an order (negative amount)
        REFUND: Spent points returned after cancellation
        EXPIRE: Points removed on expiry (negative amount)
        ADJUST: Manual correction by an admin
    """

    EARN = "earn", "Earn"
    USE = "use", "Use"
    REFUND = "refund", "Refund"
    EXPIRE = "expire", "Expire"
    ADJUST = "adjust", "Adjust"


# =============================================================================
# Coupons
# =============================================================================


class Coupon(UUIDPrimaryKeyMixin, BaseModel):
    """
    A coupon campaign.

    Fields:
        code: Code customers enter or receive
        name: Display name
        discount_type: Percentage or fixed amount
        discount_value: Percent (1-100) or amount in the smallest unit
        max_discount_amount: Cap for percentage coupons
        valid_from / valid_until: Validity window
        total_quantity: Issue limit, null for unlimited
        used_quantity: How many wallet coupons are currently used
        is_active: Whether the campaign is live
    """

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        default=DiscountType.FIXED,
    )
    discount_value = models.PositiveIntegerField()
    max_discount_amount = models.PositiveIntegerField(null=True, blank=True)
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    total_quantity = models.PositiveIntegerField(null=True, blank=True)
    used_quantity = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.code} ({self.name})"


class UserCoupon(UUIDPrimaryKeyMixin, BaseModel):
    """
    A coupon in a user's wallet.

    used_at and order are set when the coupon is spent and cleared when
    it is restored. The CouponUsage ledger is the source of truth; this
    row is the snapshot the wallet UI reads.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="coupons",
    )
    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.PROTECT,
        related_name="user_coupons",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="user_coupons",
    )
    used_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Wallet-level expiry; falls back to the coupon's valid_until",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "used_at"], name="user_coupon_used_idx")
        ]

    def __str__(self) -> str:
        return f"UserCoupon({self.user_id}, {self.coupon_id})"

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def is_expired(self, at: datetime | None = None) -> bool:
        """Whether the coupon can no longer be used at the given time."""
        at = at or timezone.now()
        expires_at = self.expires_at or self.coupon.valid_until
        return expires_at <= at


class CouponUsage(UUIDPrimaryKeyMixin, AppendOnlyMixin, models.Model):
    """
    Append-only coupon ledger.

    Fields:
        user_coupon: Wallet coupon the entry applies to
        order: Order the coupon was used on
        kind: use or restore
        discount_amount: Discount granted by the use entry
        reverses: For restore entries, the use entry being undone
        idempotency_key: Unique key preventing duplicate entries
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    user_coupon = models.ForeignKey(
        UserCoupon,
        on_delete=models.PROTECT,
        related_name="usages",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="coupon_usages",
    )
    kind = models.CharField(max_length=10, choices=CouponUsageKind.choices)
    discount_amount = models.PositiveBigIntegerField(default=0)
    reverses = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
    )
    idempotency_key = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "kind"], name="coupon_usage_order_kind_idx")
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(kind=CouponUsageKind.USE) | Q(reverses__isnull=False),
                name="coupon_restore_references_use",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()} coupon on order {self.order_id}"


# =============================================================================
# Points
# =============================================================================


class PointBalance(UUIDPrimaryKeyMixin, BaseModel):
    """
    Running point balance for a user.

    Updated only inside the transaction that appends the matching
    PointTransaction, with the row locked via select_for_update.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="point_balance",
    )
    balance = models.BigIntegerField(default=0)
    total_earned = models.BigIntegerField(default=0)
    total_used = models.BigIntegerField(default=0)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="point_balance_non_negative",
            )
        ]

    def __str__(self) -> str:
        return f"PointBalance({self.user_id}: {self.balance})"


class PointTransaction(UUIDPrimaryKeyMixin, AppendOnlyMixin, models.Model):
    """
    Append-only point ledger.

    Fields:
        user: Owner of the points
        order: Related order, if any
        transaction_type: See PointTransactionType
        amount: Signed amount (negative for use and expire)
        balance_after: Balance once this entry applied
        reference: Entry this one reverses (refund → use)
        idempotency_key: Unique key preventing duplicate entries
        description: Human-readable note
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="point_transactions",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="point_transactions",
    )
    transaction_type = models.CharField(
        max_length=10,
        choices=PointTransactionType.choices,
    )
    amount = models.BigIntegerField()
    balance_after = models.BigIntegerField()
    reference = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversals",
    )
    idempotency_key = models.CharField(max_length=255, unique=True)
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "transaction_type"], name="point_tx_order_type_idx"
            )
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(amount=0),
                name="point_transaction_amount_non_zero",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_transaction_type_display()} {self.amount} points"
