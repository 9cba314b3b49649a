"""
Django admin configuration for order models.
"""

from django.contrib import admin

from orders.models import Order, Restaurant


@admin.register(Restaurant)
class RestaurantAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "created_at")
    search_fields = ("name", "owner__email")
    raw_id_fields = ("owner",)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Orders are read-mostly here; cancellation happens through the API."""

    list_display = (
        "id",
        "restaurant",
        "user",
        "status",
        "total_amount",
        "delivery_fee",
        "payment_method",
        "created_at",
    )
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("id", "user__email", "restaurant__name", "payment_key")
    raw_id_fields = ("user", "restaurant")
    readonly_fields = ("id", "cancelled_reason", "cancelled_at", "created_at", "updated_at")
