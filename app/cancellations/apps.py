"""
Cancellations app configuration.

This app provides order cancellation including:
- Cancellation policy by order status
- Cancellation requests, approvals and rejections
- Recovery of refunds, coupons and points for cancelled orders
"""

from django.apps import AppConfig


class CancellationsConfig(AppConfig):
    """Configuration for the cancellations application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "cancellations"
    verbose_name = "Cancellations"
