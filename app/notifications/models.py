"""
Notification model for cancellation and refund updates.

Notifications are immutable records: title and body are rendered once,
when the event happens, and kept as they were sent.

Usage:
    from notifications.models import Notification, NotificationKind

    unread = Notification.objects.filter(recipient=user, is_read=False)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class NotificationKind(models.TextChoices):
    """What a notification is about, and for whom it is worded."""

    CANCELLATION_REQUESTED_CUSTOMER = (
        "cancellation_requested_customer",
        "Cancellation requested (customer)",
    )
    CANCELLATION_REQUESTED_OWNER = (
        "cancellation_requested_owner",
        "Cancellation requested (owner)",
    )
    CANCELLATION_INSTANT_COMPLETED = (
        "cancellation_instant_completed",
        "Order cancelled",
    )
    CANCELLATION_APPROVED = "cancellation_approved", "Cancellation approved"
    CANCELLATION_AUTO_APPROVED = (
        "cancellation_auto_approved",
        "Cancellation auto-approved",
    )
    CANCELLATION_REJECTED = "cancellation_rejected", "Cancellation rejected"
    CANCELLATION_WITHDRAWN = "cancellation_withdrawn", "Cancellation withdrawn"
    REFUND_COMPLETED = "refund_completed", "Refund completed"
    REFUND_FAILED = "refund_failed", "Refund failed"


class CancellationEvent(models.TextChoices):
    REQUESTED = "requested", "Requested"
    INSTANT_COMPLETED = "instant_completed", "Instant completed"
    APPROVED = "approved", "Approved"
    AUTO_APPROVED = "auto_approved", "Auto-approved"
    REJECTED = "rejected", "Rejected"
    WITHDRAWN = "withdrawn", "Withdrawn"


class RefundEvent(models.TextChoices):
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class Notification(BaseModel):
    """
    A notification delivered to one user's in-app inbox.

    Fields:
        recipient: User receiving the notification (scopes all queries)
        kind: NotificationKind
        title / body: Fully rendered text
        data: Context for the client (cancellation_id, order_id, amounts)
        is_urgent: Needs action soon (owner approvals, failed refunds)
        is_read / read_at: Read status
        idempotency_key: One notification per event and recipient
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )
    kind = models.CharField(max_length=50, choices=NotificationKind.choices)
    title = models.CharField(max_length=500)
    body = models.TextField(blank=True, default="")
    data = models.JSONField(default=dict, blank=True)
    is_urgent = models.BooleanField(default=False)
    is_read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                name="notif_idempotency_key_unique",
                condition=models.Q(idempotency_key__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.kind}) -> User {self.recipient_id} [{read_status}]"
