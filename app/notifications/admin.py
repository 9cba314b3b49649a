"""
Notification admin configuration.

Notifications are historical records, so the admin is read-only.
"""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["id", "recipient", "kind", "is_urgent", "is_read", "created_at"]
    list_filter = ["kind", "is_urgent", "is_read", "created_at"]
    search_fields = ["recipient__email", "idempotency_key"]
    readonly_fields = [
        "recipient",
        "kind",
        "title",
        "body",
        "data",
        "is_urgent",
        "is_read",
        "read_at",
        "idempotency_key",
        "created_at",
        "updated_at",
    ]

    def has_add_permission(self, request):
        return False
