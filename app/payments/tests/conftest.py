"""
Pytest fixtures for payment tests.

Usage:
    def test_refund(fake_gateway, pending_refund):
        fake_gateway.fail_with(RetryableGatewayError("down"))
        outcome = RefundService.process_refund(pending_refund.id)
        assert outcome.is_retryable
"""

import pytest

from payments.services import RefundService
from payments.tests.factories import RefundFactory
from payments.tests.fakes import FakeGatewayClient


@pytest.fixture
def fake_gateway():
    """Inject a FakeGatewayClient for the duration of the test."""
    client = FakeGatewayClient()
    RefundService.set_gateway_client(client)
    yield client
    RefundService.set_gateway_client(None)


@pytest.fixture
def pending_refund(db):
    return RefundFactory()


@pytest.fixture
def failed_refund(db):
    return RefundFactory(failed=True)


@pytest.fixture
def completed_refund(db):
    return RefundFactory(completed=True)
