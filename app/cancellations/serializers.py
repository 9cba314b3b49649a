"""
DRF serializers for cancellations app.

This module provides serializers for:
- Cancel requests and their responses
- Cancellation history with refunds
- The pre-cancel check
- Owner approval, rejection and stats

Related files:
    - models.py: OrderCancellation
    - views.py: Cancellation API views

Usage:
    serializer = CancelOrderSerializer(data=request.data)
    serializer.is_valid()
"""

from __future__ import annotations

from rest_framework import serializers

from cancellations.models import CancellationStatus, OrderCancellation
from payments.serializers import RefundSerializer


class CancelOrderSerializer(serializers.Serializer):
    """
    Request body for cancelling an order.

    reason_category is validated by the service so an unknown category
    is reported as INVALID_REASON.
    """

    reason_category = serializers.CharField(max_length=50)
    reason_detail = serializers.CharField(
        max_length=500,
        required=False,
        allow_blank=True,
        default="",
    )


class OrderCancellationSerializer(serializers.ModelSerializer):
    """Read-only serializer for OrderCancellation."""

    class Meta:
        """Serializer metadata."""

        model = OrderCancellation
        fields = [
            "id",
            "order",
            "requested_by",
            "requester_role",
            "cancel_type",
            "status",
            "reason_category",
            "reason_detail",
            "refund_amount",
            "refund_rate",
            "menu_refund_amount",
            "delivery_refund_amount",
            "can_refund_coupon",
            "can_refund_points",
            "coupon_refunded",
            "points_refunded",
            "approved_by",
            "approved_at",
            "auto_approved",
            "approval_deadline",
            "rejected_at",
            "rejection_reason",
            "withdrawn_at",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields


class CancellationHistorySerializer(OrderCancellationSerializer):
    """Cancellation with the refunds it created."""

    refunds = RefundSerializer(many=True, read_only=True)

    class Meta(OrderCancellationSerializer.Meta):
        fields = OrderCancellationSerializer.Meta.fields + ["refunds"]
        read_only_fields = fields


class RecoveryResultSerializer(serializers.Serializer):
    coupon = serializers.BooleanField(allow_null=True)
    points = serializers.BooleanField(allow_null=True)
    refund = serializers.BooleanField(allow_null=True)
    errors = serializers.DictField(child=serializers.CharField())
    fully_complete = serializers.BooleanField()


class CancellationOutcomeSerializer(serializers.Serializer):
    """Response body of cancel and approve."""

    cancellation = OrderCancellationSerializer()
    refund = RefundSerializer(allow_null=True)
    recovery = RecoveryResultSerializer(allow_null=True)

    def to_representation(self, instance):
        return {
            "cancellation": OrderCancellationSerializer(instance.cancellation).data,
            "refund": (
                RefundSerializer(instance.refund).data if instance.refund else None
            ),
            "recovery": instance.recovery.to_dict() if instance.recovery else None,
        }


class ReasonSerializer(serializers.Serializer):
    value = serializers.CharField()
    label = serializers.CharField()


class CancellabilityCheckSerializer(serializers.Serializer):
    """Response body of the pre-cancel check."""

    can_cancel = serializers.BooleanField()
    cancel_type = serializers.CharField(allow_null=True)
    refund_rate_percent = serializers.IntegerField()
    can_refund_coupon = serializers.BooleanField()
    can_refund_points = serializers.BooleanField()
    message = serializers.CharField()
    estimated_refund = serializers.DictField(child=serializers.IntegerField())
    reasons = ReasonSerializer(many=True)
    open_cancellation = OrderCancellationSerializer(allow_null=True)


class RejectCancellationSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, allow_blank=True)


class CustomerCancellationsQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=CancellationStatus.choices, required=False
    )
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(min_value=0, default=0)


class CancellationStatsQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError("date_from must not be after date_to")
        return attrs


class CancellationStatsSerializer(serializers.Serializer):
    total_requests = serializers.IntegerField()
    approved = serializers.IntegerField()
    rejected = serializers.IntegerField()
    auto_approved = serializers.IntegerField()
    pending = serializers.IntegerField()
