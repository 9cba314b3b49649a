"""
Authentication models.

Identity is owned by the auth collaborator. This module keeps the slice of
it the cancellation flow reads: who the user is and which marketplace role
they act in.

- User: Email-based user with a marketplace role

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """
    Marketplace roles.

    The role decides which cancellation reasons a user may pick and
    whether they can act as the counterpart on an approval.
    """

    CUSTOMER = "customer", "Customer"
    OWNER = "owner", "Restaurant Owner"
    RIDER = "rider", "Rider"
    ADMIN = "admin", "Admin"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        role: Marketplace role (customer, owner, rider, admin)
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created

    Usage:
        customer = User.objects.create_user(email="c@example.com", password="...")
        owner = User.objects.create_user(
            email="o@example.com", password="...", role=UserRole.OWNER
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        db_index=True,
        help_text="Marketplace role the user acts in",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    @property
    def is_admin(self) -> bool:
        """Admins by role, plus Django staff accounts."""
        return self.role == UserRole.ADMIN or self.is_staff
