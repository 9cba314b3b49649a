import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="OrderCancellation",
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
                    "requester_role",
                    models.CharField(
                        choices=[
                            ("customer", "Customer"),
                            ("owner", "Restaurant Owner"),
                            ("rider", "Rider"),
                            ("admin", "Admin"),
                            ("system", "System"),
                        ],
                        default="customer",
                        max_length=20,
                    ),
                ),
                (
                    "cancel_type",
                    models.CharField(
                        choices=[
                            ("instant", "Instant"),
                            ("approval_required", "Approval Required"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("completed", "Completed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                (
                    "reason_category",
                    models.CharField(
                        choices=[
                            ("customer_change_mind", "Changed my mind"),
                            ("customer_wrong_order", "Ordered the wrong items"),
                            ("customer_duplicate_order", "Duplicate order"),
                            ("restaurant_closed", "Restaurant closed"),
                            ("restaurant_out_of_stock", "Out of stock"),
                            ("restaurant_too_busy", "Restaurant too busy"),
                            ("delivery_issue", "Delivery issue"),
                            ("system_error", "System error"),
                            ("other", "Other"),
                        ],
                        max_length=50,
                    ),
                ),
                ("reason_detail", models.TextField(blank=True, default="")),
                ("refund_amount", models.PositiveBigIntegerField(default=0)),
                (
                    "refund_rate",
                    models.DecimalField(
                        decimal_places=4,
                        help_text="Fraction of the menu subtotal refunded (0.0 - 1.0)",
                        max_digits=5,
                    ),
                ),
                ("menu_refund_amount", models.PositiveBigIntegerField(default=0)),
                ("delivery_refund_amount", models.PositiveBigIntegerField(default=0)),
                ("can_refund_coupon", models.BooleanField(default=False)),
                ("can_refund_points", models.BooleanField(default=False)),
                ("coupon_refunded", models.BooleanField(default=False)),
                ("points_refunded", models.BooleanField(default=False)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("auto_approved", models.BooleanField(default=False)),
                (
                    "approval_deadline",
                    models.DateTimeField(blank=True, db_index=True, null=True),
                ),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, default="")),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("recovery_attempts", models.PositiveIntegerField(default=0)),
                ("last_recovery_at", models.DateTimeField(blank=True, null=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="approved_cancellations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="cancellations",
                        to="orders.order",
                    ),
                ),
                (
                    "rejected_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="rejected_cancellations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="requested_cancellations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "status"],
                        name="cancellation_order_status_idx",
                    ),
                    models.Index(
                        fields=["status", "completed_at"],
                        name="cancellation_completed_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ("pending", "approved"))),
                        fields=("order",),
                        name="one_open_cancellation_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "refund_amount",
                                models.F("menu_refund_amount")
                                + models.F("delivery_refund_amount"),
                            )
                        ),
                        name="cancellation_refund_amount_sum",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("refund_rate__gte", 0), ("refund_rate__lte", 1)
                        ),
                        name="cancellation_refund_rate_range",
                    ),
                ],
            },
        ),
    ]
