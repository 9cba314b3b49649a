"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for running the service, such as health checks.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for load balancers and container liveness checks.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"
        - payment_gateway: "configured" or "not_configured"

    HTTP Status Codes:
        200: Database reachable
        503: Database unreachable

    Note:
        Cache and gateway problems degrade the service (locks, refunds)
        but do not fail the check. Cancellations can still be recorded.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "payment_gateway": (
            "configured" if settings.STRIPE_SECRET_KEY else "not_configured"
        ),
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check could not reach the database")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a cache miss rather than an exception.
    cache.set("health_check", "ok", timeout=1)
    if cache.get("health_check") == "ok":
        health_status["cache"] = "connected"
    else:
        health_status["cache"] = "disconnected"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
