"""
Cancellation admin configuration.

Cancellations are an audit record: the admin is read-only apart from
the action that re-runs recovery.
"""

from django.contrib import admin

from core.exceptions import BaseApplicationError
from cancellations.models import CancellationStatus, OrderCancellation
from cancellations.services import RecoveryOrchestrator


@admin.register(OrderCancellation)
class OrderCancellationAdmin(admin.ModelAdmin):
    """
    Admin configuration for OrderCancellation.

    Provides visibility into decisions and recovery progress.
    """

    list_display = [
        "id",
        "order",
        "cancel_type",
        "status",
        "reason_category",
        "refund_amount",
        "coupon_refunded",
        "points_refunded",
        "recovery_attempts",
        "created_at",
    ]
    list_filter = ["status", "cancel_type", "reason_category", "auto_approved"]
    search_fields = ["id", "order__id", "requested_by__email"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_recovery"]

    fieldsets = (
        (
            None,
            {
                "fields": (
                    "id",
                    "order",
                    "requested_by",
                    "requester_role",
                    "cancel_type",
                    "status",
                ),
            },
        ),
        (
            "Reason",
            {
                "fields": ("reason_category", "reason_detail"),
            },
        ),
        (
            "Refund",
            {
                "fields": (
                    "refund_amount",
                    "refund_rate",
                    "menu_refund_amount",
                    "delivery_refund_amount",
                ),
            },
        ),
        (
            "Decision",
            {
                "fields": (
                    "approved_by",
                    "approved_at",
                    "auto_approved",
                    "approval_deadline",
                    "rejected_by",
                    "rejected_at",
                    "rejection_reason",
                    "completed_at",
                ),
            },
        ),
        (
            "Recovery",
            {
                "fields": (
                    "can_refund_coupon",
                    "coupon_refunded",
                    "can_refund_points",
                    "points_refunded",
                    "recovery_attempts",
                    "last_recovery_at",
                ),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    @admin.action(description="Retry recovery for selected cancellations")
    def retry_recovery(self, request, queryset):
        """Re-run every outstanding recovery step."""
        complete = 0
        for cancellation_id in queryset.filter(
            status=CancellationStatus.COMPLETED
        ).values_list("id", flat=True):
            try:
                result = RecoveryOrchestrator.retry_recovery(cancellation_id)
            except BaseApplicationError as e:
                self.message_user(request, f"{cancellation_id}: {e.message}")
                continue
            if result.fully_complete:
                complete += 1
        self.message_user(request, f"{complete} cancellations fully recovered.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for cancellations (audit trail)."""
        return False
