"""
URL configuration for the cancellations app.

Routes:
    - orders/<order_id>/cancel/ - Cancel (POST) and history (GET)
    - orders/<order_id>/cancel/check/ - Pre-cancel check
    - cancellations/ - The customer's own requests
    - cancellations/<id>/withdraw/ - Withdraw a pending request
    - owner/cancellations/ - Pending requests
    - owner/cancellations/stats/ - Request counts
    - owner/cancellations/<id>/approve/ - Approve
    - owner/cancellations/<id>/reject/ - Reject

All routes are prefixed with /api/v1/ when included in the main URLconf.
"""

from django.urls import path

from cancellations import views

app_name = "cancellations"

urlpatterns = [
    path(
        "orders/<uuid:order_id>/cancel/",
        views.OrderCancelView.as_view(),
        name="order_cancel",
    ),
    path(
        "orders/<uuid:order_id>/cancel/check/",
        views.OrderCancelCheckView.as_view(),
        name="order_cancel_check",
    ),
    path(
        "cancellations/",
        views.CustomerCancellationListView.as_view(),
        name="customer_cancellations",
    ),
    path(
        "cancellations/<uuid:cancellation_id>/withdraw/",
        views.WithdrawCancellationView.as_view(),
        name="withdraw",
    ),
    path(
        "owner/cancellations/",
        views.OwnerCancellationListView.as_view(),
        name="owner_pending",
    ),
    path(
        "owner/cancellations/stats/",
        views.OwnerCancellationStatsView.as_view(),
        name="owner_stats",
    ),
    path(
        "owner/cancellations/<uuid:cancellation_id>/approve/",
        views.ApproveCancellationView.as_view(),
        name="owner_approve",
    ),
    path(
        "owner/cancellations/<uuid:cancellation_id>/reject/",
        views.RejectCancellationView.as_view(),
        name="owner_reject",
    ),
]
