"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views handle HTTP concerns, models handle data, services handle logic.

Pattern Comparison:
    - ServiceResult: Use for expected failures a caller keeps going after
      (a recovery step that could not run, a business rule that said no)
    - Exceptions: Use for failures that abort the request

Usage:
    from core.services import BaseService, ServiceResult

    class CouponRecoveryService(BaseService):
        @classmethod
        def recover(cls, order_id) -> ServiceResult[RecoveryStepResult]:
            try:
                return ServiceResult.success(cls._recover(order_id))
            except BaseApplicationError as e:
                return cls.handle_exception(e, "coupon recovery")

    # In the orchestrator
    result = CouponRecoveryService.recover(order.id)
    if not result.success:
        errors.append(result.error)

Related:
    - core.exceptions: For errors that abort the request
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.
    Use this for expected failures (business rule violations, steps that
    could not run) where the caller decides what happens next.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        # Success case
        return ServiceResult.success(step_result)

        # Failure case
        return ServiceResult.failure("Coupon has expired", "NOT_RECOVERABLE")

        # Check result
        result = PointRecoveryService.recover(order_id)
        if result.success:
            restored = result.data.amount
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """Failed result; ``errors`` carries field-level validation messages."""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their message and error_code; other
        exceptions fall back to the class name.

        Args:
            exc: The caught exception
            error_code: Optional error code override

        Returns:
            ServiceResult with error details from exception
        """
        if isinstance(exc, BaseApplicationError):
            return cls(
                success=False,
                error=exc.message,
                error_code=error_code or exc.error_code,
            )
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        """
        Allow using result in boolean context.

        Example:
            result = CouponRecoveryService.recover(order_id)
            if result:  # Same as: if result.success
                cancellation.coupon_refunded = True
        """
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services hold no instance state: every operation is a classmethod.
    Expected failures come back as ServiceResult, everything else raises.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.

        Example:
            class RefundService(BaseService):
                @classmethod
                def process_refund(cls, refund_id):
                    cls.get_logger().info("Processing refund", extra={...})
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database operations within this context manager are
        wrapped in a transaction. If any operation fails, all
        changes are rolled back.

        Example:
            with cls.atomic():
                cancellation = OrderCancellation.objects.create(...)
                OrderService.mark_cancelled(order, reason)
                # If the order update fails, the cancellation is rolled back
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Convert exception to ServiceResult with logging.

        Provides consistent exception handling across services.
        Logs the exception and returns a ServiceResult.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default ERROR)

        Returns:
            ServiceResult with error details

        Example:
            try:
                cls._recover(order_id)
            except NotRecoverableError as e:
                return cls.handle_exception(e, "coupon recovery", logging.WARNING)
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(
            log_level,
            message,
            exc_info=not isinstance(exc, BaseApplicationError),
        )
        return ServiceResult.from_exception(exc)
