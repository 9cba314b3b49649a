"""
Stripe implementation of the payment gateway client.

This module provides StripeGatewayClient, which encapsulates the Stripe
Refund API. All refund calls go through it to ensure consistent error
handling, timeouts, idempotency, and observability.

Features:
- Bounded timeout on every API call
- Automatic error translation to gateway exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries
- Thread-safe for use from Celery workers

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- PAYMENT_GATEWAY_TIMEOUT_SECONDS: API call timeout (default: 30)

Usage:
    from payments.adapters import GatewayRefundRequest, StripeGatewayClient

    result = StripeGatewayClient().refund(
        GatewayRefundRequest(
            payment_key='pi_xxx',
            amount=23000,
            idempotency_key='refund:550e8400-...:1:a1b2c3d4',
        )
    )
"""

from __future__ import annotations

import logging
import time
from typing import Any

import stripe
from django.conf import settings

from payments.adapters.base import (
    GatewayRefundRequest,
    GatewayRefundResult,
    PaymentGatewayClient,
)
from payments.exceptions import (
    AlreadySettledGatewayError,
    GatewayRateLimitError,
    GatewayTimeoutError,
    NonRetryableGatewayError,
    RetryableGatewayError,
)

logger = logging.getLogger(__name__)

# Stripe error code for a charge with nothing left to refund
ALREADY_REFUNDED_CODE = "charge_already_refunded"

# Refund statuses Stripe reports for a refund that did not go through
FAILED_REFUND_STATUSES = frozenset(["failed", "canceled"])


class StripeGatewayClient(PaymentGatewayClient):
    """
    Refunds through the Stripe Refund API.

    The payment_key is either a PaymentIntent ID (pi_xxx) or a Charge
    ID (ch_xxx). Stripe's "pending" refund status counts as success: the
    refund is accepted and settles asynchronously.
    """

    name = "stripe"

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 30)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    # =========================================================================
    # Refunds
    # =========================================================================

    def request_refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        """
        Create a Stripe Refund.

        Raises:
            AlreadySettledGatewayError: Charge already fully refunded
            NonRetryableGatewayError: Invalid request, card or auth errors,
                or Stripe reported the refund failed
            GatewayTimeoutError: No response within the timeout
            GatewayRateLimitError: Rate limited by Stripe
            RetryableGatewayError: Connection, server or unknown errors
        """
        self._configure_stripe()

        log_context = {
            "operation": "create_refund",
            "payment_key": request.payment_key,
            "amount": request.amount,
            "idempotency_key": request.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        refund_params: dict[str, Any] = {
            "amount": request.amount,
            "metadata": request.metadata,
            "idempotency_key": request.idempotency_key,
        }
        if request.payment_key.startswith("ch_"):
            refund_params["charge"] = request.payment_key
        else:
            refund_params["payment_intent"] = request.payment_key

        try:
            refund = stripe.Refund.create(**refund_params)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        raw_response = {
            "id": refund.id,
            "status": refund.status,
            "amount": refund.amount,
            "payment_intent": getattr(refund, "payment_intent", None),
            "charge": getattr(refund, "charge", None),
        }

        if refund.status in FAILED_REFUND_STATUSES:
            logger.error(
                "Stripe refund was not accepted",
                extra={**log_context, **raw_response, "duration_ms": duration_ms},
            )
            raise NonRetryableGatewayError(
                f"Stripe refund {refund.id} is {refund.status}",
                gateway_code=f"refund_{refund.status}",
                details={"refund_id": refund.id},
            )

        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "stripe_refund_id": refund.id,
                "status": refund.status,
                "duration_ms": duration_ms,
            },
        )

        return GatewayRefundResult(
            success=True,
            pg_transaction_id=refund.id,
            raw_response=raw_response,
        )

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def _handle_stripe_error(
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to gateway exceptions.

        Always raises.
        """
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            if error.code == ALREADY_REFUNDED_CODE:
                raise AlreadySettledGatewayError(
                    str(error),
                    gateway_code=error.code,
                ) from error

            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise NonRetryableGatewayError(
                str(error),
                gateway_code=error.code or "invalid_request_error",
            ) from error

        elif isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise NonRetryableGatewayError(
                str(error),
                gateway_code=error.code or "card_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            # Invalid API key - permanent, operational issue
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise NonRetryableGatewayError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning(
                "Rate limited by Stripe",
                extra=log_context,
            )
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            message = str(error).lower()
            if "timeout" in message or "timed out" in message:
                logger.error(
                    "Stripe request timed out",
                    extra=log_context,
                )
                raise GatewayTimeoutError(
                    "Stripe did not respond in time. Please retry.",
                    gateway_code="timeout",
                ) from error

            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise RetryableGatewayError(
                "Could not connect to Stripe. Please retry.",
                gateway_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise RetryableGatewayError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise RetryableGatewayError(
                f"Unexpected Stripe error: {error}",
                gateway_code="unknown_error",
            ) from error
