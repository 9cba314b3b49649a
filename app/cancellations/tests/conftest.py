"""
Pytest fixtures for cancellation tests.

The payment gateway is always faked here: instant cancellations and
approvals run recovery, which refunds through the gateway.

Usage:
    def test_cancel(customer_order, fake_gateway):
        outcome = CancellationService.cancel_order(
            customer_order.id, customer_order.user, "customer_change_mind"
        )
"""

import pytest

from authentication.models import UserRole
from authentication.tests.factories import UserFactory
from orders.models import OrderStatus
from orders.tests.factories import OrderFactory
from payments.services import RefundService
from payments.tests.fakes import FakeGatewayClient


@pytest.fixture(autouse=True)
def fake_gateway():
    client = FakeGatewayClient()
    RefundService.set_gateway_client(client)
    yield client
    RefundService.set_gateway_client(None)


@pytest.fixture
def confirmed_order(db):
    """Card order of 20000 + 3000 delivery that cooking has not started on."""
    return OrderFactory(status=OrderStatus.CONFIRMED)


@pytest.fixture
def preparing_order(db):
    return OrderFactory(status=OrderStatus.PREPARING)


@pytest.fixture
def restaurant_owner(confirmed_order):
    """Owner of confirmed_order's restaurant."""
    return confirmed_order.restaurant.owner


@pytest.fixture
def admin_user(db):
    return UserFactory(role=UserRole.ADMIN)
