"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain JWT access/refresh pair
        token/refresh/             - Refresh access token
        me/                        - Current user
    /api/v1/orders/{id}/cancel/    - Request cancellation (POST), history (GET)
    /api/v1/orders/{id}/cancel/check/ - Cancellability preview
    /api/v1/owner/cancellations/   - Pending approvals for the restaurant owner
        stats/                     - Cancellation statistics
        {id}/approve/              - Approve a pending cancellation
        {id}/reject/               - Reject a pending cancellation
    /api/v1/cancellations/         - Customer's own cancellation requests
        {id}/withdraw/             - Withdraw a pending request
    /api/v1/refunds/               - Customer's own refunds (paginated)
    /api/v1/refunds/{id}/          - Refund detail (GET), retry (POST)
    /api/v1/notifications/         - In-app notifications, read status

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (JWT)
    path("auth/", include("authentication.urls")),
    # Refunds
    path("refunds/", include("payments.urls")),
    # In-app notifications
    path("notifications/", include("notifications.urls")),
    # Order cancellation and owner approval
    path("", include("cancellations.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Order Cancellation Admin"
admin.site.site_title = "Cancellation Admin"
admin.site.index_title = "Cancellations, refunds and recovery"
