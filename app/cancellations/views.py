"""
DRF views for cancellations app.

This module provides API views for:
- Cancelling an order and viewing its cancellation history
- The pre-cancel check (policy, estimated refund, reasons)
- Owner approval, rejection, pending list and stats

Related files:
    - services/: CancellationService, ApprovalService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/orders/{order_id}/cancel/ - Cancel an order
    GET /api/v1/orders/{order_id}/cancel/ - Cancellation history
    GET /api/v1/orders/{order_id}/cancel/check/ - Pre-cancel check
    GET /api/v1/cancellations/ - The customer's own requests
    POST /api/v1/cancellations/{id}/withdraw/ - Withdraw a pending request
    GET /api/v1/owner/cancellations/ - Pending requests
    GET /api/v1/owner/cancellations/stats/ - Request counts
    POST /api/v1/owner/cancellations/{id}/approve/ - Approve a request
    POST /api/v1/owner/cancellations/{id}/reject/ - Reject a request

Errors render as {"error", "error_code", "details"} with the status
carried by the exception.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import (
    OpenApiExample,
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
)
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, ValidationError
from cancellations.models import RequesterRole
from cancellations.permissions import IsRestaurantOwner
from cancellations.policy import get_available_reasons
from cancellations.serializers import (
    CancelOrderSerializer,
    CancellabilityCheckSerializer,
    CancellationHistorySerializer,
    CancellationOutcomeSerializer,
    CancellationStatsQuerySerializer,
    CancellationStatsSerializer,
    CustomerCancellationsQuerySerializer,
    OrderCancellationSerializer,
    RejectCancellationSerializer,
)
from cancellations.services import ApprovalService, CancellationService

logger = logging.getLogger(__name__)


def error_response(error: BaseApplicationError) -> Response:
    return Response(error.to_dict(), status=error.http_status)


def invalid_request(serializer) -> Response:
    return error_response(
        ValidationError("Invalid request", details=serializer.errors)
    )


# =============================================================================
# Customer Views
# =============================================================================


class OrderCancelView(APIView):
    """
    API view for cancelling an order.

    POST: Cancel the order (instant) or request cancellation (approval)
    GET: Cancellations of the order with their refunds

    URL: /api/v1/orders/{order_id}/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel order",
        description=(
            "Cancel the order immediately when its status allows, otherwise "
            "open a cancellation request for the restaurant to approve."
        ),
        tags=["Cancellations"],
        request=CancelOrderSerializer,
        responses={
            200: CancellationOutcomeSerializer,
            400: OpenApiResponse(
                description=(
                    "ALREADY_CANCELLED, INVALID_REASON, PENDING_CANCEL_EXISTS, "
                    "POLICY_DISALLOWS or VALIDATION_ERROR"
                ),
                examples=[
                    OpenApiExample(
                        "Pending Request Exists",
                        value={
                            "error": "A cancellation request for this order is already open",
                            "error_code": "PENDING_CANCEL_EXISTS",
                        },
                    ),
                ],
            ),
            403: OpenApiResponse(description="Order belongs to another customer"),
            404: OpenApiResponse(description="Order not found"),
        },
        examples=[
            OpenApiExample(
                "Cancel Request",
                value={
                    "reason_category": "customer_change_mind",
                    "reason_detail": "Ordered by mistake",
                },
                request_only=True,
            ),
        ],
    )
    def post(self, request, order_id):
        serializer = CancelOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        try:
            outcome = CancellationService.cancel_order(
                order_id=order_id,
                requester=request.user,
                reason_category=serializer.validated_data["reason_category"],
                reason_detail=serializer.validated_data["reason_detail"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(CancellationOutcomeSerializer(outcome).data)

    @extend_schema(
        summary="Cancellation history",
        tags=["Cancellations"],
        responses={200: CancellationHistorySerializer(many=True)},
    )
    def get(self, request, order_id):
        try:
            cancellations = CancellationService.get_cancellation_history(
                order_id, request.user
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(CancellationHistorySerializer(cancellations, many=True).data)


class OrderCancelCheckView(APIView):
    """
    Pre-cancel check.

    GET /api/v1/orders/{order_id}/cancel/check/

    Returns:
        The policy for the order's current status, the estimated refund,
        the reasons a customer can pick and any open request
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Check whether an order can be cancelled",
        tags=["Cancellations"],
        responses={200: CancellabilityCheckSerializer},
    )
    def get(self, request, order_id):
        try:
            check = CancellationService.check(order_id, request.user)
        except BaseApplicationError as e:
            return error_response(e)

        policy = check.policy
        open_cancellation = check.open_cancellation
        return Response(
            {
                "can_cancel": check.can_request,
                "cancel_type": policy.cancel_type,
                "refund_rate_percent": policy.refund_rate_percent,
                "can_refund_coupon": policy.can_refund_coupon,
                "can_refund_points": policy.can_refund_points,
                "message": policy.message,
                "estimated_refund": {
                    "menu": check.breakdown.menu,
                    "delivery": check.breakdown.delivery,
                    "total": check.breakdown.total,
                },
                "reasons": [
                    {"value": reason.value, "label": reason.label}
                    for reason in get_available_reasons(RequesterRole.CUSTOMER)
                ],
                "open_cancellation": (
                    OrderCancellationSerializer(open_cancellation).data
                    if open_cancellation
                    else None
                ),
            }
        )


class CustomerCancellationListView(APIView):
    """
    The current customer's cancellation requests, newest first.

    GET /api/v1/cancellations/?status=pending&limit=20&offset=0
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="My cancellation requests",
        tags=["Cancellations"],
        parameters=[
            OpenApiParameter("status", str, description="Filter by status"),
            OpenApiParameter("limit", int, description="Page size (default 20)"),
            OpenApiParameter("offset", int, description="Rows to skip"),
        ],
        responses={200: CancellationHistorySerializer(many=True)},
    )
    def get(self, request):
        query = CustomerCancellationsQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_request(query)

        cancellations = CancellationService.get_customer_cancellations(
            request.user,
            status=query.validated_data.get("status"),
            limit=query.validated_data["limit"],
            offset=query.validated_data["offset"],
        )
        return Response(CancellationHistorySerializer(cancellations, many=True).data)


class WithdrawCancellationView(APIView):
    """
    Withdraw a pending cancellation request.

    POST /api/v1/cancellations/{cancellation_id}/withdraw/

    Only the customer who made the request may withdraw it, and only while
    the restaurant has not decided yet.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Withdraw cancellation request",
        tags=["Cancellations"],
        request=None,
        responses={
            200: OrderCancellationSerializer,
            400: OpenApiResponse(description="Request is no longer pending"),
            403: OpenApiResponse(description="Request made by someone else"),
            404: OpenApiResponse(description="Cancellation not found"),
        },
    )
    def post(self, request, cancellation_id):
        try:
            cancellation = CancellationService.withdraw(
                cancellation_id, request.user
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(OrderCancellationSerializer(cancellation).data)


# =============================================================================
# Owner Views
# =============================================================================


class OwnerCancellationListView(APIView):
    """
    Pending cancellation requests for the current owner's restaurants.

    GET /api/v1/owner/cancellations/
    """

    permission_classes = [IsAuthenticated, IsRestaurantOwner]

    @extend_schema(
        summary="Pending cancellation requests",
        tags=["Owner - Cancellations"],
        responses={200: OrderCancellationSerializer(many=True)},
    )
    def get(self, request):
        pending = ApprovalService.get_pending_approvals(request.user)
        return Response(OrderCancellationSerializer(pending, many=True).data)


class OwnerCancellationStatsView(APIView):
    """
    Cancellation request counts for the current owner's restaurants.

    GET /api/v1/owner/cancellations/stats/?date_from=2025-01-01&date_to=2025-01-31
    """

    permission_classes = [IsAuthenticated, IsRestaurantOwner]

    @extend_schema(
        summary="Cancellation request stats",
        tags=["Owner - Cancellations"],
        parameters=[
            OpenApiParameter("date_from", str, description="YYYY-MM-DD"),
            OpenApiParameter("date_to", str, description="YYYY-MM-DD"),
        ],
        responses={200: CancellationStatsSerializer},
    )
    def get(self, request):
        query = CancellationStatsQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_request(query)

        stats = ApprovalService.get_cancellation_stats(
            request.user,
            date_from=query.validated_data.get("date_from"),
            date_to=query.validated_data.get("date_to"),
        )
        return Response(CancellationStatsSerializer(stats).data)


class ApproveCancellationView(APIView):
    """
    Approve a pending cancellation request.

    POST /api/v1/owner/cancellations/{cancellation_id}/approve/
    """

    permission_classes = [IsAuthenticated, IsRestaurantOwner]

    @extend_schema(
        summary="Approve cancellation",
        tags=["Owner - Cancellations"],
        request=None,
        responses={
            200: CancellationOutcomeSerializer,
            400: OpenApiResponse(description="Request is no longer pending"),
            403: OpenApiResponse(description="Not the restaurant's owner"),
            404: OpenApiResponse(description="Cancellation not found"),
        },
    )
    def post(self, request, cancellation_id):
        try:
            outcome = ApprovalService.approve(cancellation_id, approver=request.user)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(CancellationOutcomeSerializer(outcome).data)


class RejectCancellationView(APIView):
    """
    Reject a pending cancellation request.

    POST /api/v1/owner/cancellations/{cancellation_id}/reject/

    Request body:
        {"reason": "The food is already on its way"}
    """

    permission_classes = [IsAuthenticated, IsRestaurantOwner]

    @extend_schema(
        summary="Reject cancellation",
        tags=["Owner - Cancellations"],
        request=RejectCancellationSerializer,
        responses={
            200: OrderCancellationSerializer,
            400: OpenApiResponse(description="Missing reason or not pending"),
            403: OpenApiResponse(description="Not the restaurant's owner"),
            404: OpenApiResponse(description="Cancellation not found"),
        },
    )
    def post(self, request, cancellation_id):
        serializer = RejectCancellationSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_request(serializer)

        try:
            cancellation = ApprovalService.reject(
                cancellation_id,
                approver=request.user,
                reason=serializer.validated_data["reason"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            OrderCancellationSerializer(cancellation).data,
            status=status.HTTP_200_OK,
        )
