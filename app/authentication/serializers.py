"""
DRF serializers for authentication app.

- UserSerializer: The current user as other services see them

Related files:
    - models.py: User
    - views.py: CurrentUserView
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.models import User


class UserSerializer(serializers.ModelSerializer):
    """Read-only view of a user and the role they act in."""

    is_admin = serializers.BooleanField(read_only=True)

    class Meta:
        """Serializer metadata."""

        model = User
        fields = ["id", "email", "role", "is_admin", "date_joined"]
        read_only_fields = fields
