"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps:

- Generic, reusable base classes (no domain-specific logic)
- Clear extension points for domain apps
- Infrastructure concerns separated from business logic

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic locking version counter

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - AuthenticationError, AuthorizationError, ValidationError
    - StateConflictError, NotFoundError
    - ExternalServiceError, PersistenceError

Views (import from core.views):
    - health_check: Liveness/readiness endpoint

Note:
    - Business logic should NOT go here. Extend core classes in your domain apps.
    - Django models and model mixins are NOT imported here to avoid AppRegistryNotReady
      errors. Import them directly from their modules.
"""

# Exceptions (no Django dependencies)
from .exceptions import (
    AuthenticationError,
    AuthorizationError,
    BaseApplicationError,
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "AuthenticationError",
    "AuthorizationError",
    "BaseApplicationError",
    "ExternalServiceError",
    "NotFoundError",
    "PersistenceError",
    "StateConflictError",
    "ValidationError",
]
