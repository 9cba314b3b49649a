"""
Payment admin configuration.

Registers the Refund model with the Django admin. State changes go
through RefundService, so the admin only exposes actions that call it.
"""

from django.contrib import admin

from core.exceptions import BaseApplicationError
from payments.models import Refund
from payments.services import RefundService
from payments.state_machines import RefundState

__all__ = [
    "RefundAdmin",
]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status, attempts and gateway errors.
    """

    list_display = [
        "id",
        "order",
        "amount",
        "payment_method",
        "status",
        "retry_count",
        "error_code",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status", "payment_method", "is_retryable", "created_at"]
    search_fields = [
        "id",
        "pg_transaction_id",
        "payment_key",
        "order__id",
        "user__email",
    ]
    readonly_fields = [
        "id",
        "order",
        "cancellation",
        "user",
        "amount",
        "original_amount",
        "refund_rate",
        "payment_method",
        "payment_key",
        "status",
        "retry_count",
        "last_error",
        "error_code",
        "is_retryable",
        "pg_transaction_id",
        "pg_response",
        "last_attempt_at",
        "completed_at",
        "failed_at",
        "created_at",
        "updated_at",
        "version",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_selected", "cancel_selected"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order", "cancellation", "user", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "original_amount", "refund_rate"),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "payment_method",
                    "payment_key",
                    "pg_transaction_id",
                    "pg_response",
                ),
            },
        ),
        (
            "Attempts",
            {
                "fields": (
                    "retry_count",
                    "last_attempt_at",
                    "is_retryable",
                    "error_code",
                    "last_error",
                ),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": ("completed_at", "failed_at"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
                "classes": ("collapse",),
            },
        ),
    )

    @admin.action(description="Retry selected refunds now")
    def retry_selected(self, request, queryset):
        """Run a gateway attempt for each pending or failed refund."""
        succeeded = 0
        for refund_id in queryset.filter(
            status__in=[RefundState.PENDING, RefundState.FAILED]
        ).values_list("id", flat=True):
            if RefundService.process_refund(refund_id).success:
                succeeded += 1
        self.message_user(request, f"{succeeded} refunds completed.")

    @admin.action(description="Cancel selected refunds (settled manually)")
    def cancel_selected(self, request, queryset):
        """Abandon refunds that were settled outside the gateway."""
        cancelled = 0
        for refund_id in queryset.values_list("id", flat=True):
            try:
                RefundService.cancel_refund(
                    refund_id, note=f"Cancelled in admin by {request.user}"
                )
            except BaseApplicationError as e:
                self.message_user(request, f"{refund_id}: {e.message}")
                continue
            cancelled += 1
        self.message_user(request, f"Cancelled {cancelled} refunds.")

    def has_add_permission(self, request) -> bool:
        """Refunds are created by cancellations only."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for refunds (audit trail)."""
        return False
