"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(customer, api_client):
        api_client.force_authenticate(customer)
        response = api_client.get('/api/v1/auth/me/')
        assert response.status_code == 200
"""

import pytest

from authentication.models import User, UserRole
from authentication.tests.factories import UserFactory


@pytest.fixture
def customer(db):
    return UserFactory()


@pytest.fixture
def owner(db):
    return UserFactory(role=UserRole.OWNER)


@pytest.fixture
def superuser(db):
    """Create a superuser with admin privileges."""
    return User.objects.create_superuser(
        email="admin@example.com", password="AdminPass123!"
    )
