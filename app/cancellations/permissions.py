"""
Permission classes for cancellation API.

- IsRestaurantOwner: User owns restaurants (or is an admin)

Object-level checks (which restaurant, requester vs. approver) are done
in ApprovalService, since the same rules apply to auto-approval.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from authentication.models import UserRole

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsRestaurantOwner(permissions.BasePermission):
    """Allows access only to restaurant owners and admins."""

    message = "Only restaurant owners can manage cancellation requests."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        if not user.is_authenticated:
            return False
        return user.role == UserRole.OWNER or user.is_admin
