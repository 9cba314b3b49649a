"""
Tests for UserManager.

Covers email-based creation and the role defaults the cancellation
flow relies on when it authorizes requesters and approvers.
"""

import pytest
from django.contrib.auth.hashers import check_password

from authentication.models import User, UserRole
from authentication.tests.factories import UserFactory


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_customer_by_default(self, db):
        user = User.objects.create_user(
            email="mgr_create_user@example.com", password="SecurePass123!"
        )

        assert user.role == UserRole.CUSTOMER
        assert user.is_staff is False
        assert check_password("SecurePass123!", user.password)

    def test_normalizes_email_domain(self, db):
        user = User.objects.create_user(email="Someone@EXAMPLE.COM")

        assert user.email == "Someone@example.com"
        assert user.has_usable_password() is False

    def test_requires_email(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user(email="")

    def test_accepts_role(self, db):
        user = User.objects.create_user(email="owner@example.com", role=UserRole.OWNER)

        assert user.role == UserRole.OWNER
        assert user.is_admin is False


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_superuser_acts_as_admin(self, db):
        admin = User.objects.create_superuser(
            email="root@example.com", password="AdminPass123!"
        )

        assert admin.role == UserRole.ADMIN
        assert admin.is_superuser is True
        assert admin.is_admin is True

    def test_rejects_superuser_without_staff(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(email="bad@example.com", is_staff=False)


class TestUserIsAdmin:
    """Tests for the User.is_admin property."""

    def test_staff_customer_counts_as_admin(self, db):
        user = UserFactory(is_staff=True)

        assert user.is_admin is True

    def test_plain_customer_is_not_admin(self, db):
        assert UserFactory().is_admin is False
