"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os
from unittest.mock import MagicMock

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # The test client speaks plain HTTP
    settings.SECURE_SSL_REDIRECT = False


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full cancellation journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_models.py, test_policy.py, test_adapters.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_cancellation_service.py",
        "test_approval_service.py",
        "test_recovery_orchestrator.py",
        "test_refund_service.py",
        "test_coupon_recovery.py",
        "test_point_recovery.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_adapters.py",
        "test_stripe_adapter.py",
        "test_policy.py",
        "test_locks.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """DRF test client; authenticate with api_client.force_authenticate(user)."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    In-memory stand-in for the Redis connection behind DistributedLock.

    Every SET NX succeeds and every release deletes, so locks never block.
    Tests exercising contention override set.return_value.
    """
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=redis)
    return redis


@pytest.fixture
def mock_notification_tasks(mocker):
    """
    Mock the notification Celery tasks.

    Notifications are queued on commit; tests capturing on-commit callbacks
    use this to see what would have been queued without a broker.
    """
    return {
        "cancellation": mocker.patch(
            "notifications.tasks.send_cancellation_notification.delay"
        ),
        "refund": mocker.patch("notifications.tasks.send_refund_notification.delay"),
    }
