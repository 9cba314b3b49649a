"""
Celery configuration for the Django application.

Celery runs the background side of order cancellation:
- Refund processing right after a cancellation completes
- The periodic refund retry sweep
- Auto-approval of overdue cancellation requests
- The periodic recovery sweep for coupons, points and refunds

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps. The periodic
schedule lives in settings.CELERY_BEAT_SCHEDULE.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
