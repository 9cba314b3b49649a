"""
Authentication application.

Holds the User model the cancellation flow authorizes against: email login
plus the marketplace role (customer, owner, rider, admin).

Usage:
    from authentication.models import User, UserRole
"""
