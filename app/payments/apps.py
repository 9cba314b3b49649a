"""
Payments app configuration.

This app provides refund infrastructure including:
- Refund records with a django-fsm state machine
- Payment gateway clients (Stripe)
- Refund processing and retry tasks
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
