"""
DRF views for payments app.

This module provides API views for:
- The customer's refund list
- Refund status
- Manual refund retry

Related files:
    - services/refund_service.py: RefundService
    - serializers.py: Response serializers
    - urls.py: URL routing

Endpoints:
    GET /api/v1/refunds/ - The customer's refunds (paginated)
    GET /api/v1/refunds/{refund_id}/ - Get refund status
    POST /api/v1/refunds/{refund_id}/ - Retry a pending or failed refund

Security:
    - All endpoints require authentication
    - Only the order's customer (or an admin) may see or retry a refund
"""

from __future__ import annotations

import logging
import math

from drf_spectacular.utils import (
    OpenApiExample,
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, ValidationError
from payments.serializers import (
    RefundListQuerySerializer,
    RefundListResponseSerializer,
    RefundRetryResponseSerializer,
    RefundSerializer,
)
from payments.services import RefundService

logger = logging.getLogger(__name__)


class RefundListView(APIView):
    """
    The current user's refunds, newest first.

    GET /api/v1/refunds/?status=failed&page=1&limit=10
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List my refunds",
        tags=["Refunds"],
        parameters=[
            OpenApiParameter("status", str, description="Filter by refund status"),
            OpenApiParameter("page", int, description="Page number (default 1)"),
            OpenApiParameter("limit", int, description="Page size (default 10, max 50)"),
        ],
        responses={200: RefundListResponseSerializer},
    )
    def get(self, request):
        query = RefundListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            error = ValidationError("Invalid request", details=query.errors)
            return Response(error.to_dict(), status=error.http_status)

        page = query.validated_data["page"]
        limit = query.validated_data["limit"]
        refunds, total = RefundService.list_refunds_for_user(
            request.user,
            status=query.validated_data.get("status"),
            page=page,
            limit=limit,
        )
        return Response(
            {
                "refunds": RefundSerializer(refunds, many=True).data,
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "total_pages": math.ceil(total / limit),
                },
            }
        )


class RefundDetailView(APIView):
    """
    API view for a single refund.

    GET: Refund status
    POST: Retry the refund

    URL: /api/v1/refunds/{refund_id}/

    A gateway failure on retry is not an HTTP error: the response is 200
    with success=false and the refund as stored after the attempt.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get refund status",
        tags=["Refunds"],
        responses={
            200: RefundSerializer,
            403: OpenApiResponse(description="Refund belongs to another customer"),
            404: OpenApiResponse(description="Refund not found"),
        },
    )
    def get(self, request, refund_id):
        try:
            refund = RefundService.get_refund_for_user(refund_id, request.user)
        except BaseApplicationError as e:
            return Response(e.to_dict(), status=e.http_status)

        return Response(RefundSerializer(refund).data)

    @extend_schema(
        summary="Retry refund",
        description=(
            "Attempt the gateway refund again with the refund's original "
            "idempotency key."
        ),
        tags=["Refunds"],
        request=None,
        responses={
            200: RefundRetryResponseSerializer,
            400: OpenApiResponse(
                description="Refund already completed or not retryable",
                examples=[
                    OpenApiExample(
                        "Already Completed",
                        value={
                            "error": "Refund is already completed",
                            "error_code": "ALREADY_COMPLETED",
                        },
                    ),
                ],
            ),
            403: OpenApiResponse(description="Refund belongs to another customer"),
            404: OpenApiResponse(description="Refund not found"),
        },
    )
    def post(self, request, refund_id):
        """
        Retry the refund.

        Returns:
            {
                "refund": {...},
                "success": true,
                "error_code": null,
                "is_retryable": false
            }
        """
        try:
            outcome = RefundService.retry_refund(refund_id, request.user)
        except BaseApplicationError as e:
            return Response(e.to_dict(), status=e.http_status)

        logger.info(
            "Refund retry requested",
            extra={
                "refund_id": str(refund_id),
                "user_id": str(request.user.id),
                "success": outcome.success,
            },
        )
        return Response(
            {
                "refund": RefundSerializer(outcome.refund).data,
                "success": outcome.success,
                "error_code": outcome.error_code,
                "is_retryable": outcome.is_retryable,
            }
        )
