"""
Payment services for coordinating refund operations.

This module provides:
- RefundService: Creates, processes and retries refunds to customers

Usage:
    from payments.services import RefundService

    # Create the refund for a completed cancellation
    refund = RefundService.create_refund(cancellation)

    # Attempt the gateway refund
    outcome = RefundService.process_refund(refund.id)

    # Retry everything that is due
    sweep = RefundService.retry_failed_refunds(limit=50)
"""

from payments.services.refund_service import (
    RefundOutcome,
    RefundService,
    RefundSweepResult,
)

__all__ = [
    "RefundOutcome",
    "RefundService",
    "RefundSweepResult",
]
