"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

from django.db import DatabaseError


class TestHealthCheck:
    """Tests for GET /health/."""

    def test_healthy(self, client, db, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_123"

        with patch("core.views.cache") as cache:
            cache.get.return_value = "ok"
            response = client.get("/health/")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["cache"] == "connected"
        assert body["payment_gateway"] == "configured"

    def test_cache_down_does_not_fail_check(self, client, db):
        with patch("core.views.cache") as cache:
            cache.get.return_value = None
            response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"

    def test_database_down_returns_503(self, client, db):
        with patch("core.views.cache"), patch(
            "core.views.connection.cursor", side_effect=DatabaseError("down")
        ):
            response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
