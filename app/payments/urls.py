"""
URL configuration for the payments app.

Routes:
    - GET / - The user's refunds (status filter, page, limit)
    - GET /<refund_id>/ - Refund status
    - POST /<refund_id>/ - Manual refund retry

All routes are prefixed with /api/v1/refunds/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("refunds/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import RefundDetailView, RefundListView

app_name = "payments"

urlpatterns = [
    path("", RefundListView.as_view(), name="refund_list"),
    path("<uuid:refund_id>/", RefundDetailView.as_view(), name="refund_detail"),
]
