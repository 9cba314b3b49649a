"""
Payment gateway client contract.

Every gateway integration subclasses PaymentGatewayClient and implements
request_refund(), raising ExternalGatewayError subclasses on failure. The
public refund() wraps it and always returns a GatewayRefundResult, so
callers never handle gateway exceptions themselves.

Configuration (via settings):
- PAYMENT_GATEWAY_CLIENT: Dotted path of the client class
- PAYMENT_GATEWAY_TIMEOUT_SECONDS: Bound on a single gateway call

Usage:
    from payments.adapters import GatewayRefundRequest, get_gateway_client

    client = get_gateway_client(order.payment_method)
    if client is None:
        ...  # cash order, settled offline

    result = client.refund(
        GatewayRefundRequest(
            payment_key=refund.payment_key,
            amount=refund.amount,
            idempotency_key=IdempotencyKeyGenerator.generate("refund", refund.id),
        )
    )
    if result.success:
        ...
"""

from __future__ import annotations

import hashlib
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from payments.exceptions import AlreadySettledGatewayError, ExternalGatewayError

logger = logging.getLogger(__name__)

# Payment methods refunded offline, without a gateway call
OFFLINE_PAYMENT_METHODS = frozenset(["cash"])


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class GatewayRefundRequest:
    """
    Parameters for a gateway refund.

    Attributes:
        payment_key: Gateway reference of the original payment
        amount: Amount to refund in smallest currency unit
        idempotency_key: Stable key so retries settle at most once
        reason: Free-text reason passed to the gateway
        metadata: Key-value pairs attached to the gateway refund
    """

    payment_key: str
    amount: int
    idempotency_key: str
    reason: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.payment_key:
            raise ValueError("payment_key is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class GatewayRefundResult:
    """
    Outcome of a gateway refund call.

    Attributes:
        success: Whether the money is (or already was) refunded
        pg_transaction_id: Gateway refund reference
        error_code: Gateway error code on failure
        error_message: Gateway error message on failure
        is_retryable: Whether a later attempt may succeed
        already_settled: The gateway reported an earlier refund
        raw_response: Gateway response for audit
    """

    success: bool
    pg_transaction_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    is_retryable: bool = False
    already_settled: bool = False
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for gateway calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The hash component ties the key to this deployment's SECRET_KEY
    while the structured format aids debugging and correlation.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation='refund',
            entity_id=refund.id,
        )
        # Result: "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"

    Note:
        Refunds keep attempt=1 on every retry. The key must not change
        between attempts or a lost response could settle twice.
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate an idempotency key.

        Args:
            operation: The gateway operation (refund, etc.)
            entity_id: The domain entity ID (refund_id, etc.)
            attempt: Attempt discriminator (default: 1)

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Jitter prevents thundering herd when multiple workers retry simultaneously.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Client Contract
# =============================================================================


class PaymentGatewayClient(ABC):
    """
    Base class for payment gateway integrations.

    Subclasses implement request_refund() and signal failure by raising:
    - RetryableGatewayError: network, 5xx, rate limit, timeout, unknown
    - NonRetryableGatewayError: validation or authentication failures
    - AlreadySettledGatewayError: the payment was already refunded
    """

    name: str = "gateway"

    @abstractmethod
    def request_refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        """Issue the refund. Raise ExternalGatewayError subclasses on failure."""

    def refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        """
        Issue a refund and translate failures into a result.

        Never raises for gateway failures. Errors outside the gateway
        exception hierarchy are treated as unknown and retryable.
        """
        log_context = {
            "gateway": self.name,
            "amount": request.amount,
            "idempotency_key": request.idempotency_key,
        }

        try:
            return self.request_refund(request)

        except AlreadySettledGatewayError as e:
            logger.info(
                "Gateway reports refund already settled",
                extra={**log_context, "gateway_code": e.gateway_code},
            )
            return GatewayRefundResult(
                success=True,
                already_settled=True,
                raw_response={"gateway_code": e.gateway_code, "message": e.message},
            )

        except ExternalGatewayError as e:
            logger.warning(
                "Gateway refund failed",
                extra={
                    **log_context,
                    "error_code": e.error_code,
                    "gateway_code": e.gateway_code,
                    "is_retryable": e.is_retryable,
                },
            )
            return GatewayRefundResult(
                success=False,
                error_code=e.gateway_code or e.error_code,
                error_message=e.message,
                is_retryable=e.is_retryable,
            )

        except Exception as e:
            logger.exception(
                f"Unexpected error from gateway: {type(e).__name__}",
                extra=log_context,
            )
            return GatewayRefundResult(
                success=False,
                error_code="UNKNOWN_ERROR",
                error_message=str(e),
                is_retryable=True,
            )


def get_gateway_client(payment_method: str) -> PaymentGatewayClient | None:
    """
    Return the gateway client for a payment method.

    Returns:
        None for offline methods (cash); otherwise an instance of the
        class named by settings.PAYMENT_GATEWAY_CLIENT
    """
    if payment_method in OFFLINE_PAYMENT_METHODS:
        return None
    client_class = import_string(settings.PAYMENT_GATEWAY_CLIENT)
    return client_class()
