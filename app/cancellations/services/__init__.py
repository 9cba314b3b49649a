"""
Cancellation services.

This module provides:
- CancellationService: Customer cancellation requests
- ApprovalService: Restaurant decisions on approval-required requests
- RecoveryOrchestrator: Refund, coupon and points recovery

Usage:
    from cancellations.services import CancellationService

    outcome = CancellationService.cancel_order(order.id, user, "customer_change_mind")

    from cancellations.services import ApprovalService

    ApprovalService.approve(cancellation.id, approver=owner)

    from cancellations.services import RecoveryOrchestrator

    RecoveryOrchestrator.retry_recovery(cancellation.id, steps=["refund"])
"""

from cancellations.services.approval_service import ApprovalService
from cancellations.services.cancellation_service import CancellationService
from cancellations.services.recovery_orchestrator import RecoveryOrchestrator

__all__ = [
    "ApprovalService",
    "CancellationService",
    "RecoveryOrchestrator",
]
