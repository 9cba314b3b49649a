"""
Payment gateway adapters.

All refund calls to external payment gateways go through these adapters
to ensure consistent error handling, timeouts, idempotency, and
observability.

Usage:
    from payments.adapters import GatewayRefundRequest, get_gateway_client

    client = get_gateway_client(order.payment_method)
    result = client.refund(
        GatewayRefundRequest(
            payment_key='pi_xxx',
            amount=23000,
            idempotency_key=IdempotencyKeyGenerator.generate('refund', refund.id),
        )
    )
"""

from payments.adapters.base import (
    OFFLINE_PAYMENT_METHODS,
    GatewayRefundRequest,
    GatewayRefundResult,
    IdempotencyKeyGenerator,
    PaymentGatewayClient,
    backoff_delay,
    get_gateway_client,
)
from payments.adapters.stripe_adapter import StripeGatewayClient

__all__ = [
    "OFFLINE_PAYMENT_METHODS",
    "GatewayRefundRequest",
    "GatewayRefundResult",
    "IdempotencyKeyGenerator",
    "PaymentGatewayClient",
    "StripeGatewayClient",
    "backoff_delay",
    "get_gateway_client",
]
