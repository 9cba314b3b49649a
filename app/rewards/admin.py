"""
Django admin configuration for coupon and point models.

Ledger models are read-only in the admin; corrections go through new
entries.
"""

from django.contrib import admin

from rewards.models import (
    Coupon,
    CouponUsage,
    PointBalance,
    PointTransaction,
    UserCoupon,
)


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "name",
        "discount_type",
        "discount_value",
        "used_quantity",
        "total_quantity",
        "valid_until",
        "is_active",
    )
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "name")


@admin.register(UserCoupon)
class UserCouponAdmin(admin.ModelAdmin):
    list_display = ("user", "coupon", "order", "used_at", "expires_at")
    list_filter = ("used_at",)
    search_fields = ("user__email", "coupon__code")
    raw_id_fields = ("user", "coupon", "order")


@admin.register(CouponUsage)
class CouponUsageAdmin(ReadOnlyLedgerAdmin):
    list_display = ("created_at", "kind", "order", "user_coupon", "discount_amount")
    list_filter = ("kind",)
    search_fields = ("idempotency_key", "order__id")


@admin.register(PointBalance)
class PointBalanceAdmin(admin.ModelAdmin):
    list_display = ("user", "balance", "total_earned", "total_used", "updated_at")
    search_fields = ("user__email",)
    readonly_fields = ("balance", "total_earned", "total_used")


@admin.register(PointTransaction)
class PointTransactionAdmin(ReadOnlyLedgerAdmin):
    list_display = (
        "created_at",
        "user",
        "transaction_type",
        "amount",
        "balance_after",
        "order",
    )
    list_filter = ("transaction_type",)
    search_fields = ("user__email", "idempotency_key")
