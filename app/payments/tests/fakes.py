"""
Test doubles for the payment gateway.

FakeGatewayClient is injected through RefundService.set_gateway_client so
no test reaches Stripe.
"""

from payments.adapters import (
    GatewayRefundRequest,
    GatewayRefundResult,
    PaymentGatewayClient,
)


class FakeGatewayClient(PaymentGatewayClient):
    """Records requests and answers with a success or a configured error."""

    name = "fake"

    def __init__(self):
        self.requests: list[GatewayRefundRequest] = []
        self._error: Exception | None = None
        self._counter = 0

    def fail_with(self, error: Exception | None) -> None:
        """Raise this error on every following call (None to succeed again)."""
        self._error = error

    def request_refund(self, request: GatewayRefundRequest) -> GatewayRefundResult:
        self.requests.append(request)
        if self._error is not None:
            raise self._error
        self._counter += 1
        return GatewayRefundResult(
            success=True,
            pg_transaction_id=f"re_fake_{self._counter}",
            raw_response={"id": f"re_fake_{self._counter}", "status": "succeeded"},
        )

    @property
    def call_count(self) -> int:
        return len(self.requests)
