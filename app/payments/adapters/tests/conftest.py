"""
Pytest fixtures for payment gateway adapter tests.

This module provides fixtures for testing the gateway clients, including
mock Stripe API responses, error conditions, and test data.

Sections:
    - Test Data Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
    - Mock Stripe Client Fixtures
"""

import uuid
from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from payments.adapters import GatewayRefundRequest


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def refund_request():
    """A valid refund request against a PaymentIntent."""

    def _create(
        payment_key: str = "pi_test123456",
        amount: int = 23000,
        idempotency_key: str | None = None,
    ) -> GatewayRefundRequest:
        return GatewayRefundRequest(
            payment_key=payment_key,
            amount=amount,
            idempotency_key=idempotency_key or f"refund:{uuid.uuid4()}:1:abcd1234",
            metadata={"refund_id": "test"},
        )

    return _create


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        status: str = "succeeded",
        amount: int = 23000,
        payment_intent: str = "pi_test123456",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "status": status,
                "amount": amount,
                "payment_intent": payment_intent,
                "charge": None,
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "Refund amount is greater than unrefunded amount on charge",
        param: str | None = "amount",
        code: str = "amount_too_large",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(
            message=message,
            param=param,
            code=code,
        )

    return _create


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""
    return stripe.CardError(
        message="The card cannot receive refunds.",
        param=None,
        code="card_declined",
    )


@pytest.fixture
def rate_limit_error():
    """Create a Stripe RateLimitError."""
    return stripe.RateLimitError(
        message="Too many requests hit the API too quickly.",
    )


@pytest.fixture
def api_connection_error():
    """Create a Stripe APIConnectionError."""

    def _create(
        message: str = "Could not connect to Stripe.",
    ) -> stripe.APIConnectionError:
        return stripe.APIConnectionError(message=message)

    return _create


@pytest.fixture
def api_error():
    """Create a Stripe APIError."""
    return stripe.APIError(
        message="Something went wrong on Stripe's end.",
    )


@pytest.fixture
def authentication_error():
    """Create a Stripe AuthenticationError."""
    return stripe.AuthenticationError(
        message="Invalid API Key provided.",
    )


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_http_client():
    """Keep the adapter from building a real HTTP client."""
    with patch("stripe.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_refund(mock_refund):
    """Mock stripe.Refund API."""
    with patch("stripe.Refund") as mock:
        mock.create.return_value = mock_refund()
        yield mock
