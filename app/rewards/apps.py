"""
Django app configuration for rewards.
"""

from django.apps import AppConfig


class RewardsConfig(AppConfig):
    """Configuration for the rewards application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "rewards"
    verbose_name = "Coupons & Points"
