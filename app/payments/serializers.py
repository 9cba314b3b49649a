"""
DRF serializers for payments app.

This module provides serializers for:
- Refund display (customer-facing)
- The paginated refund list
- Refund retry responses

Related files:
    - models/refund.py: Refund
    - views.py: Refund API views

Usage:
    serializer = RefundSerializer(refund)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Refund
from payments.state_machines import RefundState


class RefundSerializer(serializers.ModelSerializer):
    """
    Read-only serializer for Refund.

    Gateway responses and internal error details stay out of the API;
    error_code is enough for the client to decide whether to retry.
    """

    attempt_count = serializers.IntegerField(read_only=True)

    class Meta:
        """Serializer metadata."""

        model = Refund
        fields = [
            "id",
            "order",
            "cancellation",
            "amount",
            "original_amount",
            "refund_rate",
            "payment_method",
            "status",
            "retry_count",
            "attempt_count",
            "error_code",
            "is_retryable",
            "pg_transaction_id",
            "last_attempt_at",
            "completed_at",
            "failed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class RefundRetryResponseSerializer(serializers.Serializer):
    """Response body of the retry endpoint."""

    refund = RefundSerializer()
    success = serializers.BooleanField()
    error_code = serializers.CharField(allow_null=True)
    is_retryable = serializers.BooleanField()


class RefundListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RefundState.choices, required=False)
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=50, default=10)


class PaginationSerializer(serializers.Serializer):
    page = serializers.IntegerField()
    limit = serializers.IntegerField()
    total = serializers.IntegerField()
    total_pages = serializers.IntegerField()


class RefundListResponseSerializer(serializers.Serializer):
    refunds = RefundSerializer(many=True)
    pagination = PaginationSerializer()
