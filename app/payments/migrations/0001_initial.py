import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("cancellations", "0001_initial"),
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in smallest currency unit"
                    ),
                ),
                (
                    "original_amount",
                    models.PositiveBigIntegerField(
                        help_text="Amount originally charged for the order"
                    ),
                ),
                (
                    "refund_rate",
                    models.DecimalField(
                        decimal_places=4,
                        help_text="Fraction of the menu subtotal refunded (0.0 - 1.0)",
                        max_digits=5,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        help_text="Payment method of the original order",
                        max_length=20,
                    ),
                ),
                (
                    "payment_key",
                    models.CharField(
                        blank=True,
                        help_text="Gateway payment reference to refund against",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Gateway attempts made after the first one",
                    ),
                ),
                (
                    "last_error",
                    models.TextField(
                        blank=True,
                        help_text="Error message from the last failed attempt",
                        null=True,
                    ),
                ),
                (
                    "error_code",
                    models.CharField(
                        blank=True,
                        help_text="Gateway error code from the last failed attempt",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "is_retryable",
                    models.BooleanField(
                        default=True,
                        help_text="Whether the last failure may succeed on retry",
                    ),
                ),
                (
                    "pg_transaction_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Gateway refund reference (e.g. Stripe re_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "pg_response",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Raw gateway response for audit",
                    ),
                ),
                (
                    "last_attempt_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the last gateway attempt started",
                        null=True,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True, help_text="When refund was completed", null=True
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When refund last failed", null=True
                    ),
                ),
                (
                    "cancellation",
                    models.ForeignKey(
                        help_text="Cancellation this refund settles",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="cancellations.ordercancellation",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="orders.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Customer receiving the refund",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"], name="refund_order_status_idx"
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="refund_status_created_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="refund_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "cancelled"), _negated=True),
                        fields=("cancellation",),
                        name="one_active_refund_per_cancellation",
                    ),
                ],
            },
        ),
    ]
